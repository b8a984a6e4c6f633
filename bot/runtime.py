from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord import app_commands

from bot.config import BotConfig, load_config
from bot.logging import setup_logging
from commands.backup_commands import register_backup_commands
from db.repository import SnapshotRepository
from interactions.task_registry import GuildLockRegistry, SingletonTaskRegistry
from services.backup_store import BackupStore
from services.persistence_service import SqlRepository
from services.restore_service import RestoreExecutor
from services.schedule_service import ScheduledBackupRunner, ScheduleService


log = logging.getLogger("guildvault.runtime")

SCHEDULE_WORKER_NAME = "scheduled_backup_worker"


class GuildVaultBot(discord.Client):
    def __init__(self, config: BotConfig, *, repo: SnapshotRepository | None = None) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        super().__init__(intents=intents)

        self.config = config
        self.repo = repo if repo is not None else SqlRepository(config)
        self.tree = app_commands.CommandTree(self)
        self.task_registry = SingletonTaskRegistry()
        self.guild_locks = GuildLockRegistry()

        self.store = BackupStore(self.repo, max_per_user=config.backup_max_per_user)
        self.executor = RestoreExecutor(locks=self.guild_locks)
        self.schedules = ScheduleService(self.repo)
        self.schedule_runner = ScheduledBackupRunner(self.schedules, self.store, self.get_guild)

        self._commands_registered = False
        self._commands_synced = False

    async def setup_hook(self) -> None:
        create_schema = getattr(self.repo, "create_schema", None)
        if create_schema is not None:
            await create_schema()
        if not self._commands_registered:
            register_backup_commands(self)
            self._commands_registered = True
            log.info("Registered slash commands: %s", sorted(cmd.name for cmd in self.tree.get_commands()))

    async def on_ready(self) -> None:
        if not self._commands_synced:
            await self._sync_commands()
            self._commands_synced = True
        self.task_registry.start_once(SCHEDULE_WORKER_NAME, self._scheduled_backup_worker)
        log.info("GuildVault ready as %s (guilds=%s)", self.user, len(self.guilds))

    async def _sync_commands(self) -> None:
        guild_id = int(self.config.command_guild_id)
        if guild_id:
            target = discord.Object(id=guild_id)
            self.tree.copy_global_to(guild=target)
            try:
                synced = await self.tree.sync(guild=target)
                log.info("Guild command sync completed guild_id=%s commands=%s", guild_id, len(synced))
            except discord.HTTPException:
                log.exception("Guild command sync failed guild_id=%s", guild_id)

        try:
            synced = await self.tree.sync()
            log.info("Global command sync completed commands=%s", len(synced))
        except discord.HTTPException:
            log.exception("Global command sync failed")

    async def _scheduled_backup_worker(self) -> None:
        await self.wait_until_ready()
        while not self.is_closed():
            try:
                result = await self.schedule_runner.run_once()
                if result.created or result.failed:
                    log.info(
                        "Scheduled backups processed created=%s skipped=%s failed=%s",
                        result.created,
                        result.skipped,
                        result.failed,
                    )
            except Exception:
                log.exception("Scheduled backup worker iteration failed")
            await asyncio.sleep(max(30, int(self.config.schedule_poll_seconds)))

    async def on_guild_join(self, guild: discord.Guild) -> None:
        log.info("Joined guild guild_id=%s name=%s", guild.id, guild.name)

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        log.info("Removed from guild guild_id=%s name=%s", guild.id, guild.name)

    async def close(self) -> None:
        await self.task_registry.cancel_all()
        dispose = getattr(self.repo, "dispose", None)
        if dispose is not None:
            try:
                await dispose()
            except Exception:
                log.exception("Failed to dispose database engine during shutdown")
        await super().close()


def run() -> int:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = load_config()
    except ValueError as exc:
        log.error("Config error: %s", exc)
        return 1

    setup_logging(config.log_level)
    if not config.discord_token:
        log.error("DISCORD_TOKEN missing")
        return 1

    bot = GuildVaultBot(config)
    try:
        bot.run(config.discord_token, log_handler=None)
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
