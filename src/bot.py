import discord
import logging
from cogs.scrims import Scrims
from constants import CONFIG_PATH


def create_bot(con, config_path=CONFIG_PATH):
    intents = discord.Intents.default()

    bot = discord.Bot(intents=intents)

    bot.add_cog(Scrims(bot, con, config_path))

    # Create and configure logger
    logger = logging.getLogger(__name__)
    logger.setLevel(logging.DEBUG)

    @bot.event
    async def on_ready():
        logger.info(f'We have logged in as {bot.user}')

    return bot
