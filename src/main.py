import argparse
import asyncio
import sys
import os
from aiohttp import web
from bot import create_bot
import sqlite3
from constants import DB_PATH, CONFIG_PATH, DEFAULT_CONFIG, LOG_FILE
from utils.config import save_config, load_config
import logging
from dotenv import load_dotenv


#listen for health checks (for Cloud Run)
async def health_check():
    app = web.Application()

    # Rate limiting middleware
    @web.middleware
    async def rate_limit(request, handler):
        ip = request.remote
        if hasattr(app, 'ip_count'):
            if ip in app.ip_count and app.ip_count[ip] > 100:  # 100 requests per minute
                return web.Response(status=429)
            app.ip_count[ip] = app.ip_count.get(ip, 0) + 1
        return await handler(request)

    app.middlewares.append(rate_limit)
    app.ip_count = {}

    async def handle(request):
        return web.Response(text="OK")

    # Only bind to localhost in development
    host = '127.0.0.1' if os.getenv('ENVIRONMENT') == 'development' else '0.0.0.0'

    app.router.add_get("/health", handle)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, int(os.getenv('PORT', 8080)))
    await site.start()

    # Reset rate limits every minute
    while True:
        await asyncio.sleep(60)
        app.ip_count.clear()

def setup_logging():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(LOG_FILE), logging.StreamHandler()]
    )
    # discord.py's gateway chatter is only interesting when something is wrong
    logging.getLogger('discord').setLevel(logging.WARNING)

async def run(db_path, config_path, serve_health_check=True):
    """Run the bot until it is closed"""
    logger = logging.getLogger(__name__)

    try:
        # Load config, writing the defaults on first start
        if not os.path.exists(config_path):
            save_config(config_path, DEFAULT_CONFIG)
        config = load_config(config_path, DEFAULT_CONFIG)

        # Initialize database connection
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        con = sqlite3.connect(db_path)

        # Create bot instance
        bot = create_bot(con, config_path)

        # Load token from dotenv, if exists
        load_dotenv()

        # Get token from environment or config
        bot_token = os.getenv('BOT_TOKEN') or config.get('bot_token')
        if not bot_token:
            raise ValueError("Bot token not found. Set BOT_TOKEN environment variable or configure in config.json")

        # Start health check server for Cloud Run
        if serve_health_check:
            asyncio.create_task(health_check())

        # Start the bot
        await bot.start(bot_token)

    except Exception:
        logger.exception("Bot stopped with an error")
        sys.exit(1)

def main():
    parser = argparse.ArgumentParser(description='Scrim Matchmaker Bot')
    parser.add_argument('--db-path', default=DB_PATH, help='SQLite database file')
    parser.add_argument('--config-path', default=CONFIG_PATH, help='JSON configuration file')
    parser.add_argument('--no-health-check', action='store_true', help='Do not serve the /health endpoint')
    args = parser.parse_args()

    setup_logging()
    asyncio.run(run(args.db_path, args.config_path, not args.no_health_check))

if __name__ == '__main__':
    main()
