from __future__ import annotations

import copy

from trek_catalog.ingestion.incremental_merge import generate_data_diff, merge_incremental


def _catalog(*, stardate: str, guest_stars: list[str], notes: str | None = None, year: str = "2266") -> list[dict]:
    item = {
        "id": "tos_s1",
        "title": "Star Trek: The Original Series Season 1",
        "type": "series",
        "year": year,
        "stardate": "~1.1-1.2",
        "episodes": 1,
        "episodeData": [
            {
                "id": "tos_s1_e01",
                "title": "The Man Trap",
                "season": 1,
                "episode": 1,
                "airDate": "1966-09-08",
                "stardate": stardate,
                "guestStars": guest_stars,
            }
        ],
    }
    if notes is not None:
        item["notes"] = notes
    return [{"id": "tos_era", "title": "TOS Era", "items": [item]}]


def _episode(eras: list[dict]) -> dict:
    return eras[0]["items"][0]["episodeData"][0]


def test_placeholder_never_beats_real_stardate() -> None:
    existing = _catalog(stardate="Stardate TBD", guest_stars=["Sarek"])
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    assert _episode(merge_incremental(existing, new))["stardate"] == "1312.4"

    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new = _catalog(stardate="Stardate TBD", guest_stars=["Sarek"])
    assert _episode(merge_incremental(existing, new))["stardate"] == "1312.4"


def test_empty_array_never_overwrites_populated_array() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new = _catalog(stardate="1312.4", guest_stars=[])

    assert _episode(merge_incremental(existing, new))["guestStars"] == ["Sarek"]


def test_missing_new_array_keeps_existing_plot_points() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    _episode(existing)["plotPoints"] = ["Salt vampire"]
    new = _catalog(stardate="1312.4", guest_stars=["Jeanne Bal"])

    merged = _episode(merge_incremental(existing, new))

    assert merged["plotPoints"] == ["Salt vampire"]
    assert merged["guestStars"] == ["Jeanne Bal"]


def test_notes_keep_existing_unless_new_is_non_empty() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=[], notes="Curated note")
    assert merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[], notes=""))[0]["items"][0]["notes"] == (
        "Curated note"
    )
    assert merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[]))[0]["items"][0]["notes"] == "Curated note"
    assert merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[], notes="Fresh"))[0]["items"][0]["notes"] == (
        "Fresh"
    )


def test_genuine_existing_year_is_kept_unless_new_adds_information() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=[], year="2266")

    assert merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[], year="TBD"))[0]["items"][0]["year"] == "2266"
    assert merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[], year="2266"))[0]["items"][0]["year"] == "2266"
    ranged = merge_incremental(existing, _catalog(stardate="1312.4", guest_stars=[], year="2266-2267"))
    assert ranged[0]["items"][0]["year"] == "2266-2267"


def test_existing_only_records_are_preserved_and_new_only_appended() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    existing[0]["items"].append({"id": "tmp", "type": "movie", "title": "TMP", "customField": {"curated": True}})
    existing.append({"id": "mirror_universe", "title": "Mirror", "items": []})
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new[0]["items"][0]["episodeData"].append({"id": "tos_s1_e02", "title": "Charlie X", "episode": 2})
    new.insert(0, {"id": "kelvin_timeline", "title": "Kelvin", "items": [{"id": "stb", "type": "movie", "title": "Beyond"}]})

    merged = merge_incremental(existing, new)

    assert [e["id"] for e in merged] == ["tos_era", "kelvin_timeline", "mirror_universe"]
    assert [i["id"] for i in merged[0]["items"]] == ["tos_s1", "tmp"]
    assert merged[0]["items"][1]["customField"] == {"curated": True}
    assert [e["id"] for e in merged[0]["items"][0]["episodeData"]] == ["tos_s1_e01", "tos_s1_e02"]


def test_merge_is_idempotent_and_does_not_mutate_inputs() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"], notes="Curated", year="2266")
    _episode(existing)["plotPoints"] = ["Salt vampire"]
    new = _catalog(stardate="Stardate TBD", guest_stars=[], year="TBD")
    new[0]["items"].append({"id": "tmp", "type": "movie", "title": "TMP", "year": "2273"})
    existing_snapshot = copy.deepcopy(existing)
    new_snapshot = copy.deepcopy(new)

    once = merge_incremental(existing, new)
    twice = merge_incremental(once, new)

    assert twice == once
    assert existing == existing_snapshot
    assert new == new_snapshot


def test_generate_data_diff_compares_unmerged_inputs() -> None:
    existing = _catalog(stardate="Stardate TBD", guest_stars=["Sarek"])
    existing[0]["items"].append({"id": "tmp", "type": "movie", "title": "TMP"})
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new[0]["items"][0]["episodeData"].append({"id": "tos_s1_e02", "title": "Charlie X"})
    new.append({"id": "kelvin_timeline", "title": "Kelvin", "items": []})

    diff = generate_data_diff(existing, new)

    assert diff.summary() == {
        "eras": {"added": 1, "removed": 0, "modified": 0},
        "items": {"added": 0, "removed": 1, "modified": 0},
        "episodes": {"added": 1, "removed": 0, "modified": 1},
    }
    modified = [c for c in diff.episodes if c.change == "modified"][0]
    assert modified.id == "tos_s1_e01"
    assert modified.fields_changed == ("stardate",)
    assert modified.parent_id == "tos_s1"
    assert diff.has_changes
    assert generate_data_diff(existing, existing).has_changes is False


def test_item_moved_between_eras_keeps_existing_placement() -> None:
    from trek_catalog.ingestion.quality import find_duplicate_ids

    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"], notes="Curated placement")
    existing[0]["id"] = "tng_era"
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])

    merged = merge_incremental(existing, new)

    assert find_duplicate_ids([item for era in merged for item in era["items"]]) == []
    by_era = {era["id"]: [item["id"] for item in era["items"]] for era in merged}
    assert by_era == {"tos_era": [], "tng_era": ["tos_s1"]}
    assert merged[1]["items"][0]["notes"] == "Curated placement"
    assert merge_incremental(merged, new) == merged


def test_season_episode_count_and_range_follow_merged_episodes() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    existing[0]["items"][0]["episodeData"].append(
        {"id": "tos_s1_e02", "title": "Charlie X", "season": 1, "episode": 2, "airDate": "1966-09-15"}
    )
    existing[0]["items"][0]["episodes"] = 2
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new[0]["items"][0]["stardate"] = "~1.1-1.1"

    item = merge_incremental(existing, new)[0]["items"][0]

    assert len(item["episodeData"]) == 2
    assert item["episodes"] == 2
    assert item["stardate"] == "~1.1-1.2"


def test_curated_season_stardate_is_not_resynthesized() -> None:
    existing = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    existing[0]["items"][0]["stardate"] = "1312.4-3287.2"
    new = _catalog(stardate="1312.4", guest_stars=["Sarek"])
    new[0]["items"][0]["stardate"] = "None"

    item = merge_incremental(existing, new)[0]["items"][0]

    assert item["stardate"] == "1312.4-3287.2"
    assert item["episodes"] == 1


def test_new_items_are_placed_chronologically_within_their_era() -> None:
    from trek_catalog.ingestion.quality import validate_chronology

    existing = [{"id": "tos_era", "title": "TOS Era", "items": [{"id": "tas_s1", "type": "series", "year": "2269"}]}]
    new = [
        {
            "id": "tos_era",
            "title": "TOS Era",
            "items": [
                {"id": "tos_s1", "type": "series", "year": "2266"},
                {"id": "tas_s1", "type": "series", "year": "2269"},
            ],
        }
    ]

    merged = merge_incremental(existing, new)

    assert [i["id"] for i in merged[0]["items"]] == ["tos_s1", "tas_s1"]
    assert validate_chronology(merged) == []
