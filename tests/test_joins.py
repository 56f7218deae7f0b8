import asyncio

import pytest

from channelviews.composition.joins import JoinResolver, JoinSpec, validate_joins
from channelviews.errors import ShapeError
from channelviews.identifiers import TargetKind

OWNER = JoinSpec("accounts", "owner_id", "id", "owner")
MEDIA_REACTIONS = JoinSpec(
    "reactions", "id", "target_id", "reactions", where={"target_kind": TargetKind.MEDIA}
)


def resolve(store, *args, **kwargs):
    return asyncio.run(JoinResolver(store).resolve(*args, **kwargs))


def test_left_outer_keeps_unmatched_rows(world):
    rows = resolve(world.store, "media_items", {"owner_id": world.alice["id"]}, [MEDIA_REACTIONS])
    by_title = {row["title"]: row for row in rows}
    assert len(by_title["First"]["reactions"]) == 3
    assert by_title["Second"]["reactions"] == []
    assert by_title["Draft"]["reactions"] == []


def test_reference_to_deleted_entity_yields_empty_match(world):
    world.store.delete("accounts", world.alice["id"])
    rows = resolve(world.store, "media_items", {"id": world.m1["id"]}, [OWNER])
    assert len(rows) == 1
    assert rows[0]["owner"] == []


def test_where_restricts_polymorphic_target_kind(world):
    # Same identifier, different kind: must not be attached to the media item
    world.store.insert(
        "reactions", actor_id=world.dave["id"], target_kind=TargetKind.POST, target_id=world.m2["id"]
    )
    rows = resolve(world.store, "media_items", {"id": world.m2["id"]}, [MEDIA_REACTIONS])
    assert rows[0]["reactions"] == []


def test_second_hop_runs_within_first_hop(world):
    spec = JoinSpec("media_items", "media_id", "id", "media", nested=(OWNER,))
    rows = resolve(world.store, "watch_entries", {"account_id": world.alice["id"]}, [spec])
    assert len(rows) == 2
    for row in rows:
        (media,) = row["media"]
        (owner,) = media["owner"]
        assert owner["id"] == world.alice["id"]


def test_sibling_joins_are_merged_onto_the_same_rows(world):
    rows = resolve(
        world.store,
        "media_items",
        {"id": world.m1["id"]},
        [OWNER, MEDIA_REACTIONS],
    )
    assert rows[0]["owner"][0]["username"] == "alice"
    assert len(rows[0]["reactions"]) == 3
    assert rows[0]["reactions"] == sorted(rows[0]["reactions"], key=lambda r: r["id"])


def test_raw_string_key_is_a_shape_error(world):
    raw_row = dict(world.m1, owner_id=str(world.alice["id"]))
    with pytest.raises(ShapeError, match="expected Identifier"):
        asyncio.run(JoinResolver(world.store).attach("media_items", [raw_row], [OWNER]))


def test_missing_join_key_is_a_shape_error(world):
    row = {k: v for k, v in world.m1.items() if k != "owner_id"}
    with pytest.raises(ShapeError, match="missing join key"):
        asyncio.run(JoinResolver(world.store).attach("media_items", [row], [OWNER]))


def test_non_identifier_fields_cannot_be_joined():
    with pytest.raises(ShapeError, match="identifier fields"):
        validate_joins("media_items", [JoinSpec("accounts", "title", "username", "x")])


def test_join_depth_is_limited():
    third = JoinSpec("accounts", "id", "id", "again")
    second = JoinSpec("accounts", "id", "id", "self_again", nested=(third,))
    first = JoinSpec("accounts", "owner_id", "id", "owner", nested=(second,))
    with pytest.raises(ShapeError, match="maximum depth"):
        validate_joins("media_items", [first])


def test_output_field_collision():
    with pytest.raises(ShapeError, match="collides"):
        validate_joins("media_items", [JoinSpec("accounts", "owner_id", "id", "title")])


def test_no_base_rows_means_no_join_queries(world):
    rows = resolve(world.store, "media_items", {"owner_id": world.eve["id"]}, [MEDIA_REACTIONS])
    assert rows == []
