import discord, asyncio, logging
from discord.ext import commands
from datetime import datetime, timezone
from time import time
from cogs.database import *
from cogs.custom_views import *
from cogs.session import ScrimSession, REMOVE_MESSAGES
from constants import *
from utils.config import load_config, save_config, parse_config_value
from utils.errors import NotFoundError, TransientIOError, UserInputError
from utils.parsing import complete_timezone, parse_rank_range, parse_scheduled_time, parse_timezone

class Scrims(commands.Cog):

    def __init__(self, bot, database, config_path, clock=time):
        # Initialize the cog
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(logging.DEBUG)

        self.bot = bot
        self.config_path = config_path

        # Database setup
        self.database_con = database
        self.store = ScrimStore(self.database_con, clock)
        self.preferences = UserPreferences(self.database_con)
        self.finder = MatchFinder(self.store)

        self.update_config()

    def update_config(self):
        # Load configuration from the config file, missing keys fall back to the defaults
        config = load_config(self.config_path, DEFAULT_CONFIG)

        # SCRIM OPTIONS CONFIG
        self.regions = [str(region) for region in config.get('regions', DEFAULT_CONFIG['regions'])]
        self.platforms = [str(platform) for platform in config.get('platforms', DEFAULT_CONFIG['platforms'])]

        # MATCHMAKING CONFIG
        self.finder.weights = MatchWeights.from_config(config)
        self.finder.limit = int(config.get('max_candidates', DEFAULT_CONFIG['max_candidates']))

        # INTERACTION TIMEOUTS (seconds)
        self.session_timeout = float(config.get('session_timeout', DEFAULT_CONFIG['session_timeout']))
        self.confirm_timeout = float(config.get('confirm_timeout', DEFAULT_CONFIG['confirm_timeout']))

    def now(self):
        return datetime.fromtimestamp(self.store.now(), tz=timezone.utc)

    async def cog_command_error(self, ctx: discord.ApplicationContext, error):
        error = getattr(error, 'original', error)
        if isinstance(error, (UserInputError, NotFoundError)):
            self.logger.info(f"{ctx.author.name} got an error from /{ctx.command.name}: {error}")
            await ctx.respond(str(error), ephemeral=True)
        elif isinstance(error, TransientIOError):
            self.logger.error(f"Database failure in /{ctx.command.name}", exc_info=error)
            await ctx.respond("Something went wrong while talking to the database. Please try again later.", ephemeral=True)
        else:
            self.logger.error(f"An error occured in /{ctx.command.name}", exc_info=error)
            await ctx.respond("An unexpected error occured, please contact an admin.", ephemeral=True)

    # Options are matched case-insensitively against the configured lists
    def resolve_choice(self, value, choices, kind):
        for choice in choices:
            if choice.lower() == value.strip().lower():
                return choice
        raise UserInputError(f"Invalid {kind} `{value}`. Please choose one of: {', '.join(choices)}")

    def get_user_zone(self, user_id):
        try:
            zone_name = self.preferences.get_timezone(user_id)
        except NotFoundError as e:
            raise UserInputError(str(e)) from None
        return parse_timezone(zone_name)

    async def region_autocomplete(self, ctx: discord.AutocompleteContext):
        return [region for region in self.regions if region.lower().startswith((ctx.value or "").lower())]

    async def platform_autocomplete(self, ctx: discord.AutocompleteContext):
        return [platform for platform in self.platforms if platform.lower().startswith((ctx.value or "").lower())]

    async def timezone_autocomplete(self, ctx: discord.AutocompleteContext):
        return complete_timezone(ctx.value or "")

    @discord.commands.slash_command(description="Displays a help message and a list of commands.")
    async def help(self, ctx : discord.ApplicationContext):
        em = discord.Embed(
            title="Scrim Matchmaker Command List",
            description="Set your timezone with /timezone, post a request with /findscrim, then check /scrims for matches.",
            color=discord.Color.blurple())
        for slash_command in self.walk_commands():
            if not slash_command.default_member_permissions or slash_command.default_member_permissions <= ctx.author.guild_permissions:
                em.add_field(name="/" + slash_command.name,
                            value=slash_command.description if slash_command.description else slash_command.name,
                            inline=False)
                            # fallbacks to the command name incase command description is not defined

        await ctx.respond(embed=em, ephemeral=True)

    @discord.commands.slash_command(name="timezone", description="Set your timezone")
    async def set_timezone(self, ctx: discord.ApplicationContext,
                           zone: discord.Option(str, description="Timezone to set. Use autocomplete to see available timezones", autocomplete=timezone_autocomplete, required=False, default=None)):
        if zone:
            tz = parse_timezone(zone)
            self.preferences.set_timezone(ctx.author.id, tz.key)
            await ctx.respond(f"Timezone set to `{tz.key}`. Current time: `{self.now().astimezone(tz):%d/%m/%Y %H:%M}`", ephemeral=True)
        else:
            tz = parse_timezone(self.preferences.get_timezone(ctx.author.id))
            await ctx.respond(f"Your timezone is `{tz.key}`. Current time: `{self.now().astimezone(tz):%d/%m/%Y %H:%M}`", ephemeral=True)

    @discord.commands.slash_command(name="findscrim", description="Look for a scrim")
    async def find_scrim(self, ctx: discord.ApplicationContext,
                         region: discord.Option(str, description="Region to look in", autocomplete=region_autocomplete),
                         platform: discord.Option(str, description="Platform to look on", autocomplete=platform_autocomplete),
                         rank_range: discord.Option(str, name="range", description="Single rank or range of ranks to look for, e.g. `4.3k` or `4k-4.5k`"),
                         scheduled: discord.Option(str, name="time", description="Start time, e.g. `20`, `8:30pm`, `tomorrow 8pm`, `20 monday` or `july 4th 20`"),
                         team_name: discord.Option(str, description="Optional team name to show in the confirmation message and to other users", required=False, default=None)):
        zone = self.get_user_zone(ctx.author.id)
        region = self.resolve_choice(region, self.regions, "region")
        platform = self.resolve_choice(platform, self.platforms, "platform")
        scrim = ScrimRequest(
            creator_id=ctx.author.id,
            team_name=team_name,
            region=region,
            platform=platform,
            rank_range=parse_rank_range(rank_range),
            time=parse_scheduled_time(scheduled, zone, self.now()),
        )
        summary = f"Looking for a scrim in {scrim.region}/{scrim.platform} at {scrim.rank_range} on <t:{scrim.time}:F>"
        self.logger.debug(f"{ctx.author.name} is confirming {scrim}")

        view = ConfirmView(ctx.author.id, self.confirm_timeout)
        await ctx.respond(f"{summary}. Please confirm:", view=view, ephemeral=True)
        timed_out = await view.wait()

        if timed_out or view.interaction is None:
            self.logger.debug(f"Confirmation of {ctx.author.name}'s scrim timed out")
            await ctx.interaction.delete_original_response()
            return
        if not view.confirmed:
            await view.interaction.response.edit_message(content="Cancelled", view=None)
            return

        scrim.id = self.store.create(scrim)
        await view.interaction.response.edit_message(content=f"{summary}\nUse `/scrims` to see potential matches.", view=None)

    @discord.commands.slash_command(name="scrims", description="List your upcoming scrims")
    async def list_scrims(self, ctx: discord.ApplicationContext):
        scrims = self.store.list_active_by_creator(ctx.author.id)
        if not scrims:
            await ctx.respond("You have no upcoming scrims", ephemeral=True)
            return

        session = ScrimSession(self.store, self.finder, scrims).open()
        self.logger.info(f"Opened scrim session {session.session_id} for {ctx.author.name} with {len(scrims)} scrim(s)")

        now = self.store.now()
        await ctx.respond(f"You have {len(scrims)} upcoming scrim(s):", ephemeral=True)
        messages = []
        for idx, flow in enumerate(session.flows):
            messages.append(await ctx.followup.send(flow_content(flow, now), view=flow_view(session, idx), ephemeral=True, wait=True))
        messages.append(await ctx.followup.send("These messages are removed after a while without activity.", view=controls_view(session), ephemeral=True, wait=True))

        await self.run_session(ctx, session, messages)

    async def run_session(self, ctx: discord.ApplicationContext, session: ScrimSession, messages):
        """Handle the session's controls one interaction at a time until removal or timeout."""
        def check(interaction):
            custom_id = (interaction.data or {}).get('custom_id')
            return interaction.user is not None and interaction.user.id == ctx.author.id and session.owns(custom_id)

        # Messages are removed however the loop ends, errors go on to cog_command_error
        try:
            while True:
                try:
                    interaction = await self.bot.wait_for("interaction", check=check, timeout=self.session_timeout)
                except asyncio.TimeoutError:
                    self.logger.debug(f"Scrim session {session.session_id} timed out")
                    return

                data = interaction.data or {}
                parsed = session.parse_custom_id(data.get('custom_id'))
                if parsed is None:
                    await interaction.response.defer()
                    continue

                action, index = parsed
                if action == REMOVE_MESSAGES:
                    await interaction.response.defer()
                    return

                if session.apply(action, index, data.get('values', [])):
                    await interaction.response.edit_message(content=flow_content(session.flows[index], self.store.now()), view=flow_view(session, index))
                else:
                    await interaction.response.defer()
        finally:
            await self.remove_messages(ctx, messages)

    async def remove_messages(self, ctx: discord.ApplicationContext, messages):
        for message in messages:
            try:
                await message.delete()
            except discord.HTTPException as e:
                self.logger.warning(f"Could not delete session message: {e}")
        try:
            await ctx.interaction.delete_original_response()
        except discord.HTTPException as e:
            self.logger.warning(f"Could not delete session header: {e}")

    @discord.commands.slash_command(name="cancelscrims", description="Cancel scrims. This removes them from the matchmaker.")
    async def cancel_scrims(self, ctx: discord.ApplicationContext):
        scrims = self.store.list_active_by_creator(ctx.author.id)
        if not scrims:
            await ctx.respond("You have no upcoming scrims", ephemeral=True)
            return
        zone = self.get_user_zone(ctx.author.id)
        scrims = scrims[:MAX_SELECT_OPTIONS]

        view = CancelScrimsView(ctx.author.id, cancel_options(scrims, zone), self.confirm_timeout)
        await ctx.respond("Select the scrims you want to cancel:", view=view, ephemeral=True)
        timed_out = await view.wait()

        if timed_out or view.interaction is None:
            await ctx.interaction.delete_original_response()
            return
        if not view.selected:
            await view.interaction.response.edit_message(content="No scrims selected.", view=None)
            return

        for idx in view.selected:
            self.store.cancel(scrims[idx].id)
        await view.interaction.response.edit_message(content="Scrim(s) cancelled.", view=None)

    @discord.commands.slash_command(name="viewconfig", description="[Admin Command] View current bot configuration.")
    @discord.commands.default_permissions(manage_guild=True)
    async def view_config(self, ctx: discord.ApplicationContext):
        """Displays the configuration as persisted, with defaults for missing keys."""
        config = load_config(self.config_path, DEFAULT_CONFIG)
        config.pop('bot_token', None)

        em = discord.Embed(title="Current Configuration", color=discord.Color.blurple())
        for k, v in config.items():
            em.add_field(name=str(k), value=str(v), inline=False)

        await ctx.respond(embed=em, ephemeral=True)

    @discord.commands.slash_command(name="setconfig", description="[Admin Command] Set a configuration key.")
    @discord.commands.default_permissions(manage_guild=True)
    async def set_config(self, ctx: discord.ApplicationContext,
                         key: discord.Option(str, choices=list(DEFAULT_CONFIG.keys())),
                         value: discord.Option(str)):
        """Update a single configuration key and persist it to disk."""
        try:
            parsed_value = parse_config_value(value, DEFAULT_CONFIG[key])
        except ValueError as e:
            raise UserInputError(f"Invalid value for `{key}`: {e}") from None

        config = load_config(self.config_path, DEFAULT_CONFIG)
        config[key] = parsed_value
        save_config(self.config_path, config)
        self.update_config()

        self.logger.info(f"{ctx.author.name} set config {key} to {parsed_value}")
        await ctx.respond(f"Configuration key `{key}` updated to `{parsed_value}`", ephemeral=True)
