import discord
import os
import sys
import asyncio
import time
import logging
from typing import List, Optional, Tuple

from config import DISCORD_TOKEN, EXIT_CONFIG_ERROR, LOG_LEVEL, SESSION_SWEEP_INTERVAL, SESSION_TTL
from conversation import ConversationHandler
from exceptions import ConfigurationError
from orchestrator import ChatTransport, ScrapeOrchestrator
from sessions import SessionStore
from utils import BookAssembler

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Discord hard limits
MAX_MESSAGE_LENGTH = 2000
MAX_EMBED_DESCRIPTION = 4096
EMBED_COLOR = 0x5865F2


def build_view(buttons: Optional[List[Tuple[str, str]]]) -> Optional[discord.ui.View]:
    """One row of buttons whose custom_id carries the payload.

    The view times out with the session behind its buttons, which drops it
    from the client's view store.
    """
    if not buttons:
        return None
    view = discord.ui.View(timeout=SESSION_TTL)
    for label, payload in buttons:
        view.add_item(discord.ui.Button(label=label, custom_id=payload,
                                        style=discord.ButtonStyle.primary))
    return view


class DiscordTransport(ChatTransport):
    """ChatTransport over a discord.Client; chat ids are channel ids, refs are Messages"""

    def __init__(self, client: discord.Client):
        self.client = client

    async def _channel(self, chat_id: int):
        channel = self.client.get_channel(chat_id)
        if channel is None:
            channel = await self.client.fetch_channel(chat_id)
        return channel

    async def send_message(self, chat_id, text, buttons=None):
        channel = await self._channel(chat_id)
        view = build_view(buttons)
        if view is None:
            return await channel.send(text[:MAX_MESSAGE_LENGTH])
        return await channel.send(text[:MAX_MESSAGE_LENGTH], view=view)

    async def send_photo(self, chat_id, image_url, caption, buttons=None):
        channel = await self._channel(chat_id)
        embed = discord.Embed(description=caption[:MAX_EMBED_DESCRIPTION], color=EMBED_COLOR)
        embed.set_image(url=image_url)
        view = build_view(buttons)
        if view is None:
            return await channel.send(embed=embed)
        return await channel.send(embed=embed, view=view)

    async def edit_message(self, ref: discord.Message, text):
        # Status text replaces any preview embed and its buttons
        await ref.edit(content=text[:MAX_MESSAGE_LENGTH], embed=None, view=None)

    async def delete_message(self, ref: discord.Message):
        await ref.delete()

    async def send_document(self, chat_id, path, caption):
        channel = await self._channel(chat_id)
        return await channel.send(content=caption[:MAX_MESSAGE_LENGTH],
                                  file=discord.File(path, filename=os.path.basename(path)))


class NovelBot(discord.Client):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.store = SessionStore()
        self.transport = DiscordTransport(self)
        self.orchestrator = ScrapeOrchestrator(self.transport, BookAssembler())
        self.conversation = ConversationHandler(self.store, self.orchestrator, self.transport)
        self.sweep_task = None  # Background session reaper

    async def _session_sweep_loop(self):
        """Background task dropping expired sessions and pending ranges"""
        await self.wait_until_ready()
        while not self.is_closed():
            try:
                await asyncio.sleep(SESSION_SWEEP_INTERVAL)
                self.store.sweep()
            except Exception as e:
                logger.warning(f"Session sweep error: {e}")

    async def on_ready(self):
        logger.info(f'Logged in as {self.user} (ID: {self.user.id})')

        # Start session sweep if not already running
        if self.sweep_task is None or self.sweep_task.done():
            self.sweep_task = asyncio.create_task(self._session_sweep_loop())
            logger.info("Started session sweep task")

    async def on_disconnect(self):
        logger.warning("BOT DISCONNECTED from Discord, waiting for automatic reconnection...")

    async def on_message(self, message: discord.Message):
        # Ignore bot's own messages (and other bots)
        if message.author.id == self.user.id or message.author.bot:
            return
        if not message.content:
            return
        try:
            await self.conversation.handle_text(message.channel.id, message.content)
        except Exception as e:
            logger.error(f"Error handling message in channel {message.channel.id}: {e}", exc_info=True)

    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return
        data = (interaction.data or {}).get('custom_id', '')

        async def ack(text: str, alert: bool = False):
            if alert:
                text = f"**{text}**"
            try:
                await interaction.response.send_message(text, ephemeral=True)
            except discord.HTTPException as e:
                logger.warning(f"Failed to acknowledge button {data!r}: {e}")

        try:
            await self.conversation.handle_button(interaction.channel_id, data,
                                                  interaction.message, ack)
        except Exception as e:
            logger.error(f"Error handling button {data!r}: {e}", exc_info=True)


def require_token(token: Optional[str]) -> str:
    if not token:
        raise ConfigurationError("DISCORD_TOKEN not found in environment variables")
    return token


def main():
    try:
        token = require_token(DISCORD_TOKEN)
    except ConfigurationError as e:
        logger.critical(f"Error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    intents = discord.Intents.default()
    intents.message_content = True  # Required to read novel links

    # Run bot with error handling
    max_retries = 3
    retry_count = 0

    while retry_count < max_retries:
        try:
            logger.info("Starting Discord bot...")
            client = NovelBot(intents=intents)
            client.run(token, log_handler=None)
            break  # If run() exits normally
        except discord.errors.LoginFailure as e:
            logger.critical(f"Login failed, check DISCORD_TOKEN: {e}")
            sys.exit(EXIT_CONFIG_ERROR)
        except discord.errors.PrivilegedIntentsRequired:
            logger.critical("Missing required intents. Enable Message Content intent for the bot.")
            sys.exit(EXIT_CONFIG_ERROR)
        except discord.errors.GatewayNotFound:
            logger.error("Discord Gateway not found. Retrying...")
            retry_count += 1
            if retry_count < max_retries:
                time.sleep(5)
        except KeyboardInterrupt:
            logger.info("Bot stopped by user")
            break
        except Exception as e:
            logger.error(f"Bot error: {e}")
            retry_count += 1
            if retry_count < max_retries:
                logger.info(f"Retrying in 5 seconds... ({retry_count}/{max_retries})")
                time.sleep(5)
            else:
                logger.critical("Max retries reached. Exiting.")
                sys.exit(1)


if __name__ == '__main__':
    main()
