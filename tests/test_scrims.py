import asyncio
import json
import os
import shutil
import sqlite3
import tempfile
import unittest
import coverage
from unittest.mock import AsyncMock, MagicMock, patch

# Mock the discord.commands.slash_command decorator
def mock_slash_command(*args, **kwargs):
    def decorator(func):
        return func
    return decorator

# Apply the patch before importing Scrims
patch("discord.commands.slash_command", mock_slash_command).start()

from cogs.scrims import Scrims  # Import after patching
from cogs.database import ScrimRequest
from cogs.session import ScrimSession
from utils.errors import NotFoundError, TransientIOError, UserInputError
from utils.parsing import RankRange
import discord

NOW = 1_700_000_000
HOUR = 3600
AUTHOR_ID = 111


class TestScrims(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        # Real in-memory database, mocked discord objects
        self.bot = MagicMock()
        self.database_con = sqlite3.connect(":memory:")
        self.config_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.config_dir, "config.json")

        self.scrims = Scrims(self.bot, self.database_con, self.config_path, clock=lambda: NOW)

        # Mock context and author
        self.ctx = AsyncMock()
        self.ctx.author = MagicMock()
        self.ctx.author.id = AUTHOR_ID
        self.ctx.author.name = "TestPlayer"
        self.ctx.respond = AsyncMock()

    def tearDown(self):
        self.database_con.close()
        shutil.rmtree(self.config_dir, ignore_errors=True)

    def add(self, creator_id, **kwargs):
        fields = dict(region="EU", platform="PC", rank_range=RankRange(4000, 4000), time=NOW + HOUR)
        fields.update(kwargs)
        scrim = ScrimRequest(creator_id=creator_id, **fields)
        scrim.id = self.scrims.store.create(scrim)
        return scrim

    def mock_view(self, confirmed=None, timed_out=False, selected=None):
        """Helper to build what a view looks like after the user answered it."""
        view = MagicMock()
        view.wait = AsyncMock(return_value=timed_out)
        view.confirmed = confirmed
        view.selected = selected or []
        if timed_out:
            view.interaction = None
        else:
            view.interaction = MagicMock()
            view.interaction.response.edit_message = AsyncMock()
        return view

    def mock_interaction(self, custom_id, values=None, user_id=AUTHOR_ID):
        interaction = MagicMock()
        interaction.user.id = user_id
        interaction.data = {"custom_id": custom_id}
        if values is not None:
            interaction.data["values"] = values
        interaction.response.edit_message = AsyncMock()
        interaction.response.defer = AsyncMock()
        return interaction

    # /timezone

    async def test_set_timezone(self):
        await self.scrims.set_timezone(self.ctx, "Europe/Berlin")
        self.assertEqual(self.scrims.preferences.get_timezone(AUTHOR_ID), "Europe/Berlin")
        response = self.ctx.respond.call_args.args[0]
        self.assertTrue(response.startswith("Timezone set to `Europe/Berlin`"))
        self.assertIn("14/11/2023 23:13", response)

    async def test_set_invalid_timezone(self):
        with self.assertRaises(UserInputError):
            await self.scrims.set_timezone(self.ctx, "Mars/Olympus")

    async def test_show_timezone(self):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        await self.scrims.set_timezone(self.ctx, None)
        self.assertIn("Your timezone is `UTC`", self.ctx.respond.call_args.args[0])

    async def test_show_timezone_unset(self):
        with self.assertRaises(NotFoundError):
            await self.scrims.set_timezone(self.ctx, None)

    # /findscrim

    async def test_find_scrim_requires_timezone(self):
        with self.assertRaises(UserInputError) as cm:
            await self.scrims.find_scrim(self.ctx, "EU", "PC", "4k", "2030-07-04 20:00")
        self.assertIn("/timezone", str(cm.exception))

    async def test_find_scrim_invalid_region(self):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        with self.assertRaises(UserInputError):
            await self.scrims.find_scrim(self.ctx, "Moon", "PC", "4k", "2030-07-04 20:00")

    @patch("cogs.scrims.ConfirmView")
    async def test_find_scrim_confirmed(self, confirm_view):
        """A confirmed request is stored with the region and platform spelled as configured."""
        self.scrims.preferences.set_timezone(AUTHOR_ID, "Europe/Berlin")
        view = self.mock_view(confirmed=True)
        confirm_view.return_value = view

        await self.scrims.find_scrim(self.ctx, "eu", "pc", "4k-4.5k", "2030-07-04 20:00", "Sharks")

        confirm_view.assert_called_once_with(AUTHOR_ID, self.scrims.confirm_timeout)
        self.assertIn("Please confirm", self.ctx.respond.call_args.args[0])
        stored = self.scrims.store.list_active_by_creator(AUTHOR_ID)
        self.assertEqual(len(stored), 1)
        self.assertEqual((stored[0].region, stored[0].platform, stored[0].team_name), ("EU", "PC", "Sharks"))
        self.assertEqual(stored[0].rank_range, RankRange(4000, 4500))
        self.assertEqual(stored[0].time, 1909418400)  # 2030-07-04 18:00 UTC
        content = view.interaction.response.edit_message.call_args.kwargs["content"]
        self.assertIn("Use `/scrims` to see potential matches.", content)

    @patch("cogs.scrims.ConfirmView")
    async def test_find_scrim_cancelled(self, confirm_view):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        view = self.mock_view(confirmed=False)
        confirm_view.return_value = view

        await self.scrims.find_scrim(self.ctx, "EU", "PC", "4k", "2030-07-04 20:00")

        self.assertEqual(self.scrims.store.list_active_by_creator(AUTHOR_ID), [])
        view.interaction.response.edit_message.assert_awaited_once_with(content="Cancelled", view=None)

    @patch("cogs.scrims.ConfirmView")
    async def test_find_scrim_timed_out(self, confirm_view):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        confirm_view.return_value = self.mock_view(timed_out=True)

        await self.scrims.find_scrim(self.ctx, "EU", "PC", "4k", "2030-07-04 20:00")

        self.assertEqual(self.scrims.store.list_active_by_creator(AUTHOR_ID), [])
        self.ctx.interaction.delete_original_response.assert_awaited_once()

    # /scrims

    async def test_list_scrims_empty(self):
        await self.scrims.list_scrims(self.ctx)
        self.ctx.respond.assert_called_with("You have no upcoming scrims", ephemeral=True)

    async def test_list_scrims_times_out(self):
        """One message per scrim plus the controls, all removed once the session times out."""
        self.add(AUTHOR_ID)
        self.add(AUTHOR_ID, time=NOW + 2 * HOUR)
        self.add(222)
        self.bot.wait_for = AsyncMock(side_effect=asyncio.TimeoutError)

        await self.scrims.list_scrims(self.ctx)

        self.assertEqual(self.ctx.respond.call_args.args[0], "You have 2 upcoming scrim(s):")
        self.assertEqual(self.ctx.followup.send.await_count, 3)
        first = self.ctx.followup.send.call_args_list[0]
        self.assertIn("### Potential matches:", first.args[0])
        self.assertEqual(self.ctx.followup.send.return_value.delete.await_count, 3)
        self.ctx.interaction.delete_original_response.assert_awaited_once()

    async def test_run_session(self):
        mine = self.add(AUTHOR_ID)
        theirs = self.add(222)
        session = ScrimSession(self.scrims.store, self.scrims.finder, [mine], session_id="abc").open()
        messages = [AsyncMock(), AsyncMock()]

        accept = self.mock_interaction("abc:accept:0", ["0"])
        bogus = self.mock_interaction("abc:accept:7", ["0"])
        remove = self.mock_interaction("abc:remove_msgs:0")
        self.bot.wait_for = AsyncMock(side_effect=[accept, bogus, remove])

        await self.scrims.run_session(self.ctx, session, messages)

        self.assertEqual(self.scrims.store.get(mine.id).match_id, theirs.id)
        self.assertIn("Proposed to <@222>", accept.response.edit_message.call_args.kwargs["content"])
        bogus.response.defer.assert_awaited_once()
        remove.response.defer.assert_awaited_once()
        for message in messages:
            message.delete.assert_awaited_once()

    async def test_run_session_only_listens_to_its_author(self):
        session = ScrimSession(self.scrims.store, self.scrims.finder, [], session_id="abc")
        self.bot.wait_for = AsyncMock(side_effect=asyncio.TimeoutError)
        await self.scrims.run_session(self.ctx, session, [])

        check = self.bot.wait_for.call_args.kwargs["check"]
        self.assertTrue(check(self.mock_interaction("abc:refresh:0")))
        self.assertFalse(check(self.mock_interaction("abc:refresh:0", user_id=222)))
        self.assertFalse(check(self.mock_interaction("other:refresh:0")))

    async def test_run_session_store_failure_removes_messages(self):
        """A failing store call ends the session, its controls are removed and the error propagates."""
        mine = self.add(AUTHOR_ID)
        session = ScrimSession(self.scrims.store, self.scrims.finder, [mine], session_id="abc").open()
        messages = [AsyncMock(), AsyncMock()]
        self.bot.wait_for = AsyncMock(side_effect=[self.mock_interaction("abc:cancel:0")])

        with patch.object(self.scrims.store, "cancel", side_effect=TransientIOError("Database error while trying to cancel a scrim")):
            with self.assertRaises(TransientIOError):
                await self.scrims.run_session(self.ctx, session, messages)

        for message in messages:
            message.delete.assert_awaited_once()
        self.ctx.interaction.delete_original_response.assert_awaited_once()

    # /cancelscrims

    async def test_cancel_scrims_empty(self):
        await self.scrims.cancel_scrims(self.ctx)
        self.ctx.respond.assert_called_with("You have no upcoming scrims", ephemeral=True)

    @patch("cogs.scrims.CancelScrimsView")
    async def test_cancel_scrims(self, cancel_view):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        keep = self.add(AUTHOR_ID)
        drop = self.add(AUTHOR_ID, time=NOW + 2 * HOUR)
        view = self.mock_view(selected=[1])
        cancel_view.return_value = view

        await self.scrims.cancel_scrims(self.ctx)

        self.assertEqual(len(cancel_view.call_args.args[1]), 2)
        self.assertFalse(self.scrims.store.get(keep.id).cancelled)
        self.assertTrue(self.scrims.store.get(drop.id).cancelled)
        view.interaction.response.edit_message.assert_awaited_once_with(content="Scrim(s) cancelled.", view=None)

    @patch("cogs.scrims.CancelScrimsView")
    async def test_cancel_scrims_nothing_selected(self, cancel_view):
        self.scrims.preferences.set_timezone(AUTHOR_ID, "UTC")
        keep = self.add(AUTHOR_ID)
        view = self.mock_view()
        cancel_view.return_value = view

        await self.scrims.cancel_scrims(self.ctx)

        self.assertFalse(self.scrims.store.get(keep.id).cancelled)
        view.interaction.response.edit_message.assert_awaited_once_with(content="No scrims selected.", view=None)

    # Errors

    async def test_user_errors_are_shown(self):
        error = discord.ApplicationCommandInvokeError(UserInputError("Invalid timezone"))
        await self.scrims.cog_command_error(self.ctx, error)
        self.ctx.respond.assert_called_with("Invalid timezone", ephemeral=True)

    async def test_database_errors_get_a_generic_reply(self):
        error = discord.ApplicationCommandInvokeError(TransientIOError("Database error while trying to list scrims"))
        await self.scrims.cog_command_error(self.ctx, error)
        self.ctx.respond.assert_called_with("Something went wrong while talking to the database. Please try again later.", ephemeral=True)

    async def test_unexpected_errors_are_hidden(self):
        error = discord.ApplicationCommandInvokeError(RuntimeError("boom"))
        await self.scrims.cog_command_error(self.ctx, error)
        self.ctx.respond.assert_called_with("An unexpected error occured, please contact an admin.", ephemeral=True)

    # Config

    async def test_set_config(self):
        await self.scrims.set_config(self.ctx, "regions", "EU, NA, APAC")
        self.assertEqual(self.scrims.regions, ["EU", "NA", "APAC"])
        with open(self.config_path) as f:
            self.assertEqual(json.load(f)["regions"], ["EU", "NA", "APAC"])

    async def test_set_config_invalid_value(self):
        with self.assertRaises(UserInputError):
            await self.scrims.set_config(self.ctx, "max_candidates", "lots")

    def test_update_config_from_file(self):
        with open(self.config_path, "w") as f:
            json.dump({"max_candidates": 3, "region_weight": 0, "session_timeout": 60}, f)
        self.scrims.update_config()
        self.assertEqual(self.scrims.finder.limit, 3)
        self.assertEqual(self.scrims.finder.weights.region, 0.0)
        self.assertEqual(self.scrims.session_timeout, 60.0)
        self.assertEqual(self.scrims.platforms, ["PC", "Console"])

    async def test_region_autocomplete(self):
        ctx = MagicMock()
        ctx.value = "e"
        self.assertEqual(await self.scrims.region_autocomplete(ctx), ["EU"])
        ctx.value = ""
        self.assertEqual(await self.scrims.region_autocomplete(ctx), ["EU", "NA"])


if __name__ == '__main__':
    unittest.main()
