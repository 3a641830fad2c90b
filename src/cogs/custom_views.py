import discord
import logging

from cogs.session import ACCEPT, CANCEL, REFRESH, REMOVE_MESSAGES, RESTORE, REVOKE, Cancelled, Looking, Matched
from constants import MAX_SELECT_OPTIONS, SELECT_LABEL_LIMIT
from utils.formatting import candidate_label, local_time, scrim_heading, scrim_with_name

logger = logging.getLogger(__name__)


class ConfirmView(discord.ui.View):
    """Confirm/Cancel buttons for a new scrim request. Check `confirmed` after `wait()`."""

    def __init__(self, author_id, timeout):
        super().__init__(timeout=timeout)
        self.author_id = author_id
        self.confirmed = None
        self.interaction = None

    async def interaction_check(self, interaction: discord.Interaction):
        return interaction.user.id == self.author_id

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.success)
    async def confirm_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.confirmed = True
        self.interaction = interaction
        self.stop()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.danger)
    async def cancel_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.confirmed = False
        self.interaction = interaction
        self.stop()


class CancelScrimsView(discord.ui.View):
    """Multi select of the user's scrims plus a confirm button."""

    def __init__(self, author_id, options, timeout):
        super().__init__(timeout=timeout)
        self.author_id = author_id
        self.selected = []
        self.interaction = None

        self.select = discord.ui.Select(
            placeholder="Scrims to cancel",
            min_values=0,
            max_values=len(options),
            options=options,
            row=0,
        )
        self.select.callback = self.on_select
        self.add_item(self.select)

    async def interaction_check(self, interaction: discord.Interaction):
        return interaction.user.id == self.author_id

    async def on_select(self, interaction: discord.Interaction):
        self.selected = [int(value) for value in self.select.values]
        await interaction.response.defer()

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger, row=1)
    async def confirm_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.interaction = interaction
        self.stop()


def cancel_options(scrims, zone):
    options = []
    for idx, scrim in enumerate(scrims[:MAX_SELECT_OPTIONS]):
        team = f"{scrim.team_name}: " if scrim.team_name else ""
        label = f"{team}{scrim.region}/{scrim.platform} {scrim.rank_range} on {local_time(scrim, zone)}"
        options.append(discord.SelectOption(label=label[:SELECT_LABEL_LIMIT], value=str(idx)))
    return options


def flow_content(flow, now=None):
    """Message text for one sub-flow of a scrim session."""
    scrim = flow.scrim
    state = flow.state
    lines = [scrim_heading(scrim, now)]

    if isinstance(state, Looking):
        if state.previous_revoked:
            lines.append("Your previous match was revoked because the other team matched with someone else.")
        if state.candidates:
            lines.append("### Potential matches:")
            for n, candidate in enumerate(state.candidates):
                proposed = " - *wants to play you!*" if candidate.scrim.match_id == scrim.id else ""
                lines.append(f"{n + 1}. {scrim_with_name(candidate.scrim, scrim, now=now)}{proposed}")
        else:
            lines.append("No matches found. Try again later")
    elif isinstance(state, Matched):
        if state.confirmed:
            lines.append(f"Matched with {scrim_with_name(state.partner, scrim, now=now)}")
        else:
            lines.append(f"Proposed to {scrim_with_name(state.partner, scrim, now=now)}, waiting for them to accept")
    elif isinstance(state, Cancelled):
        lines.append("Cancelled. It is hidden from the matchmaker until you restore it.")

    return "\n".join(lines)


def flow_view(session, index):
    """Controls for sub-flow `index`. The items have no callbacks, the cog's session loop reads their ids."""
    flow = session.flows[index]
    state = flow.state
    view = discord.ui.View(timeout=None)

    if isinstance(state, Looking):
        if state.candidates:
            view.add_item(discord.ui.Select(
                custom_id=session.custom_id(ACCEPT, index),
                placeholder="Accept a match",
                options=[
                    discord.SelectOption(label=candidate_label(n + 1, candidate.scrim), value=str(n))
                    for n, candidate in enumerate(state.candidates)
                ],
                row=0,
            ))
        view.add_item(discord.ui.Button(label="Refresh", style=discord.ButtonStyle.secondary, custom_id=session.custom_id(REFRESH, index), row=1))
        view.add_item(discord.ui.Button(label="Cancel scrim", style=discord.ButtonStyle.danger, custom_id=session.custom_id(CANCEL, index), row=1))
    elif isinstance(state, Matched):
        view.add_item(discord.ui.Button(label="Revoke", style=discord.ButtonStyle.danger, custom_id=session.custom_id(REVOKE, index)))
    elif isinstance(state, Cancelled):
        view.add_item(discord.ui.Button(label="Restore", style=discord.ButtonStyle.success, custom_id=session.custom_id(RESTORE, index)))

    return view


def controls_view(session):
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(label="Remove messages", style=discord.ButtonStyle.secondary, custom_id=session.custom_id(REMOVE_MESSAGES)))
    return view
