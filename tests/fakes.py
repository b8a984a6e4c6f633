from __future__ import annotations

from types import SimpleNamespace


BOT_PERMISSIONS = ("manage_guild", "manage_roles", "manage_channels")


class FakeRole:
    def __init__(
        self,
        name: str,
        *,
        position: int = 1,
        colour: int = 0,
        hoist: bool = False,
        mentionable: bool = False,
        permissions: int = 0,
        managed: bool = False,
    ):
        self.name = name
        self.position = position
        self.colour = colour
        self.hoist = hoist
        self.mentionable = mentionable
        self.permissions = permissions
        self.managed = managed
        self.edits: list[dict] = []

    async def edit(self, **kwargs):
        self.edits.append(kwargs)


class FakeOverwrite:
    def __init__(self, allow: int, deny: int):
        self.allow = allow
        self.deny = deny

    def pair(self):
        return self.allow, self.deny


class FakeChannel:
    def __init__(
        self,
        name: str,
        *,
        type: int = 0,
        position: int = 0,
        category: "FakeChannel | None" = None,
        topic: str | None = None,
        nsfw: bool = False,
        bitrate: int | None = None,
        user_limit: int | None = None,
        slowmode_delay: int = 0,
        overwrites: dict | None = None,
    ):
        self.name = name
        self.type = type
        self.position = position
        self.category = category
        self.topic = topic
        self.nsfw = nsfw
        self.bitrate = bitrate
        self.user_limit = user_limit
        self.slowmode_delay = slowmode_delay
        self.overwrites = overwrites or {}


class FakeGuild:
    """Guild stand-in that records every mutation a restore performs."""

    def __init__(
        self,
        *,
        guild_id: int = 1000,
        name: str = "Test Guild",
        roles: list[FakeRole] | None = None,
        channels: list[FakeChannel] | None = None,
        emojis: list | None = None,
        bot_permissions: tuple[str, ...] = BOT_PERMISSIONS,
        bot_top_position: int = 50,
    ):
        self.id = guild_id
        self.name = name
        self.description = None
        self.icon = None
        self.banner = None
        self.verification_level = 0
        self.explicit_content_filter = 0
        self.default_notifications = 0
        self.afk_timeout = 300
        self.afk_channel = None
        self.system_channel = None
        self.rules_channel = None
        self.public_updates_channel = None
        self.premium_tier = 0
        self.premium_subscription_count = 0
        self.bitrate_limit = 96000.0
        self.default_role = FakeRole("@everyone", position=0)
        self.roles = [self.default_role, *(roles or [])]
        self.channels = list(channels or [])
        self.emojis = list(emojis or [])
        self.me = SimpleNamespace(
            guild_permissions=SimpleNamespace(**{name: True for name in bot_permissions}),
            top_role=SimpleNamespace(position=bot_top_position),
        )

        self.edits: list[dict] = []
        self.created_roles: list[dict] = []
        self.created_channels: list[tuple[str, str, dict]] = []
        self.fail_edit: dict[str, Exception] = {}
        self.fail_create: dict[str, Exception] = {}

    async def edit(self, *, reason=None, **kwargs):
        for key in kwargs:
            if key in self.fail_edit:
                raise self.fail_edit[key]
        self.edits.append(kwargs)
        for key, value in kwargs.items():
            setattr(self, key, getattr(value, "value", value))

    async def create_role(self, *, name, reason=None, **kwargs):
        if name in self.fail_create:
            raise self.fail_create[name]
        role = FakeRole(name, position=1)
        self.roles.append(role)
        self.created_roles.append({"name": name, **kwargs})
        return role

    async def _create_channel(self, method: str, name: str, channel_type: int, kwargs: dict):
        if name in self.fail_create:
            raise self.fail_create[name]
        channel = FakeChannel(name, type=channel_type, category=kwargs.get("category"))
        self.channels.append(channel)
        self.created_channels.append((method, name, kwargs))
        return channel

    async def create_category(self, name, **kwargs):
        return await self._create_channel("category", name, 4, kwargs)

    async def create_text_channel(self, name, **kwargs):
        return await self._create_channel("text", name, 0, kwargs)

    async def create_voice_channel(self, name, **kwargs):
        return await self._create_channel("voice", name, 2, kwargs)

    async def create_stage_channel(self, name, **kwargs):
        return await self._create_channel("stage", name, 13, kwargs)

    async def create_forum(self, name, **kwargs):
        return await self._create_channel("forum", name, 15, kwargs)

    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]
