from __future__ import annotations

import json

import pytest

from services.backup_errors import InvalidSnapshot
from services.snapshot_schema import (
    KIND_SECTIONS,
    GuildProfile,
    GuildSettingsSnapshot,
    RoleSnapshot,
    SnapshotPayload,
    decode_payload,
    encode_payload,
    infer_kind,
    payload_from_dict,
    payload_size_bytes,
    require_kind,
)


def _roles_payload() -> SnapshotPayload:
    return SnapshotPayload(
        kind="roles",
        guild=GuildProfile(name="Guild"),
        roles=[RoleSnapshot(name="Mods", color=0xFF0000, hoisted=True, permissions=8, position=2)],
    )


def test_custom_kind_is_roles_plus_settings():
    assert KIND_SECTIONS["custom"] == frozenset({"roles", "settings"})
    assert KIND_SECTIONS["full"] == frozenset({"roles", "channels", "emojis", "settings"})


def test_validate_rejects_missing_section():
    payload = SnapshotPayload(kind="full", guild=GuildProfile(name="Guild"), roles=[])
    with pytest.raises(InvalidSnapshot, match="missing sections"):
        payload.validate()


def test_validate_rejects_extra_section_for_fixed_kinds():
    payload = _roles_payload()
    payload.settings = GuildSettingsSnapshot()
    with pytest.raises(InvalidSnapshot, match="must not contain"):
        payload.validate()


def test_require_kind_normalizes_and_rejects_unknown():
    assert require_kind(" FULL ") == "full"
    with pytest.raises(InvalidSnapshot):
        require_kind("everything")


def test_encode_is_canonical_and_size_counts_utf8_bytes():
    payload = _roles_payload()
    payload.guild.name = "Gilde ✨"
    encoded = encode_payload(payload)

    assert encoded == encode_payload(payload)
    assert " " not in encoded.replace("Gilde ✨", "")
    assert payload_size_bytes(encoded) == len(encoded.encode("utf-8"))
    assert payload_size_bytes(encoded) > len(encoded)


def test_decode_round_trips_encoded_payload():
    payload = _roles_payload()
    decoded = decode_payload("roles", encode_payload(payload))

    assert decoded == payload


def test_decode_rejects_invalid_json():
    with pytest.raises(InvalidSnapshot, match="not valid JSON"):
        decode_payload("roles", "{not json")


def test_payload_from_dict_ignores_unknown_keys_and_requires_names():
    data = {"guild": {"name": "Guild", "extra": 1}, "roles": [{"name": "A", "unknown": True}]}
    payload = payload_from_dict("roles", data)
    assert payload.roles[0].name == "A"

    with pytest.raises(InvalidSnapshot, match="without a name"):
        payload_from_dict("roles", {"guild": {"name": "Guild"}, "roles": [{"color": 1}]})


def test_payload_without_guild_header_is_invalid():
    with pytest.raises(InvalidSnapshot, match="no guild section"):
        payload_from_dict("roles", {"roles": []})


def test_infer_kind_matches_section_set():
    assert infer_kind({"guild": {}, "roles": [], "settings": {}}) == "custom"
    assert infer_kind({"guild": {}, "channels": []}) == "channels"
    with pytest.raises(InvalidSnapshot):
        infer_kind({"guild": {}, "roles": [], "emojis": []})


def test_to_dict_contains_only_present_sections():
    data = _roles_payload().to_dict()
    assert set(data) == {"guild", "roles"}
    assert json.loads(json.dumps(data))["roles"][0]["hoisted"] is True


@pytest.mark.parametrize(
    ("data", "message"),
    [
        ({"guild": {"name": "Guild"}, "roles": [{"name": "A", "position": None}]}, "'position' must not be null"),
        ({"guild": {"name": "Guild"}, "roles": [{"name": "A", "color": "red"}]}, "'color' must be int"),
        ({"guild": {"name": "Guild"}, "roles": [{"name": "A", "permissions": True}]}, "'permissions' must be int"),
        ({"guild": {"name": "Guild"}, "roles": [{"name": "A", "hoisted": 1}]}, "'hoisted' must be bool"),
        ({"guild": {"name": "Guild", "verification_level": "high"}, "roles": []}, "'verification_level' must be int"),
        ({"guild": {"name": ""}, "roles": []}, "without a name"),
    ],
)
def test_payload_from_dict_rejects_wrongly_typed_fields(data, message):
    with pytest.raises(InvalidSnapshot, match=message):
        payload_from_dict("roles", data)


def test_permission_override_fields_are_type_checked():
    data = {
        "guild": {"name": "Guild"},
        "channels": [
            {
                "name": "chat",
                "permission_overrides": [{"target_name": "Muted", "target_type": "role", "allow": "x"}],
            }
        ],
    }
    with pytest.raises(InvalidSnapshot, match="'allow' must be int"):
        payload_from_dict("channels", data)

    data["channels"][0]["permission_overrides"][0]["allow"] = 0
    payload = payload_from_dict("channels", data)
    assert payload.channels[0].permission_overrides[0].target_name == "Muted"
    assert payload.channels[0].bitrate is None
