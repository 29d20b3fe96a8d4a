"""Unit tests for the worker capability registry."""

from __future__ import annotations

from pathlib import Path

import pytest

from pantheon_orchestrator.domain.models import OrchestrationMode
from pantheon_orchestrator.synthesis_plane.registry import (
    DEFAULT_COMPLEXITY_FACTOR,
    CapabilityRegistry,
    WorkerType,
    bundled_catalog_path,
    load_registry,
)

EXPECTED_WORKERS = (
    "aegis",
    "apollo",
    "argus",
    "athena",
    "calliope",
    "code-reviewer",
    "concilium",
    "daedalus",
    "harmonia",
    "hephaestus",
    "hermes",
    "iris",
    "janus",
    "oracle",
    "prometheus",
    "themis",
    "vulcan",
    "zeus",
)


def _minimal_catalog() -> dict[str, object]:
    return {
        "schema_version": 1,
        "workers": [
            {"name": "Scribe", "capabilities": ["docs", "docs"], "tools": ["git"], "mode": "fixed"},
            {
                "name": "planner_bot",
                "capabilities": ["planning"],
                "tools": ["*"],
                "mode": "adaptive",
                "complexity_factor": 2,
            },
        ],
    }


def test_bundled_catalog_lists_all_worker_types() -> None:
    registry = load_registry()

    assert bundled_catalog_path().name == "workers.yaml"
    assert registry.worker_types() == EXPECTED_WORKERS
    assert len(registry) == 18
    assert "zeus" in registry
    assert "Code_Reviewer" in registry
    assert "nobody" not in registry
    assert load_registry() is registry


def test_bundled_catalog_modes_and_factors() -> None:
    registry = load_registry()

    assert registry.require("janus").mode is OrchestrationMode.ADAPTIVE
    assert registry.require("zeus").mode is OrchestrationMode.FIXED
    assert registry.complexity_factor("hephaestus") == 2.0
    assert registry.complexity_factor("hermes") == 1.0
    assert registry.complexity_factor("unknown-worker") == DEFAULT_COMPLEXITY_FACTOR
    assert registry.require("vulcan").has_all_tools
    assert registry.require("aegis").can_use("github")
    assert not registry.require("aegis").can_use("playwright")


def test_find_by_capability_is_sorted_and_deterministic() -> None:
    registry = load_registry()

    assert registry.find_by_capability("security") == ("aegis",)
    assert registry.find_by_capability("ui-design") == ("apollo", "harmonia", "iris", "oracle")
    assert registry.find_by_capability("Quality Assurance") == ("argus", "code-reviewer", "themis")
    assert registry.find_by_capability("astrology") == ()


def test_describe_and_tools_for() -> None:
    registry = load_registry()

    described = registry.describe("daedalus")
    assert described["name"] == "daedalus"
    assert described["display_name"] == "Daedalus"
    assert described["capabilities"] == ["api", "database", "system-design"]
    assert described["mode"] == "fixed"
    assert registry.tools_for("daedalus") == ("browsermcp", "context7", "github")


def test_require_unknown_worker_raises_key_error() -> None:
    registry = load_registry()
    with pytest.raises(KeyError, match="unknown worker type: ghost"):
        registry.require("ghost")
    with pytest.raises(KeyError):
        registry.describe("ghost")


def test_from_mapping_normalizes_names_and_dedupes_capabilities() -> None:
    registry = CapabilityRegistry.from_mapping(_minimal_catalog())

    assert registry.worker_types() == ("planner-bot", "scribe")
    scribe = registry.require("scribe")
    assert scribe.capabilities == ("docs",)
    assert scribe.display_name == "Scribe"
    assert scribe.complexity_factor == DEFAULT_COMPLEXITY_FACTOR
    assert registry.require("planner-bot").complexity_factor == 2.0
    assert registry.to_dict()["workers"][0]["name"] == "planner-bot"  # type: ignore[index]


@pytest.mark.parametrize(
    ("mutate", "message"),
    [
        (lambda payload: payload.update(schema_version=2), "unsupported worker catalog"),
        (lambda payload: payload.update(workers="zeus"), "must be a sequence"),
        (lambda payload: payload["workers"][0].pop("tools"), "missing required fields"),
        (lambda payload: payload["workers"][0].update(colour="red"), "unexpected fields"),
        (lambda payload: payload["workers"][0].update(mode="chaotic"), "mode 'chaotic' is invalid"),
        (lambda payload: payload["workers"][1].update(name="scribe"), "duplicate worker type"),
        (lambda payload: payload["workers"][0].update(complexity_factor=0), "positive number"),
    ],
)
def test_from_mapping_rejects_invalid_catalogs(mutate: object, message: str) -> None:
    payload = _minimal_catalog()
    mutate(payload)  # type: ignore[operator]
    with pytest.raises(ValueError, match=message):
        CapabilityRegistry.from_mapping(payload)


def test_from_file_reports_yaml_errors(tmp_path: Path) -> None:
    broken = tmp_path / "workers.yaml"
    broken.write_text("workers: [\n", encoding="utf-8")
    with pytest.raises(ValueError, match="invalid YAML"):
        CapabilityRegistry.from_file(broken)

    listing = tmp_path / "list.yaml"
    listing.write_text("- zeus\n", encoding="utf-8")
    with pytest.raises(ValueError, match="expected top-level YAML mapping"):
        CapabilityRegistry.from_file(listing)

    with pytest.raises(ValueError, match="unable to read worker catalog"):
        CapabilityRegistry.from_file(tmp_path / "missing.yaml")


def test_from_file_loads_operator_catalog(tmp_path: Path) -> None:
    catalog = tmp_path / "team.yaml"
    catalog.write_text(
        "schema_version: 1\n"
        "workers:\n"
        "  - name: solo\n"
        "    capabilities: [coding]\n"
        "    tools: [git]\n"
        "    mode: fixed\n",
        encoding="utf-8",
    )

    registry = load_registry(catalog)
    assert registry.worker_types() == ("solo",)
    assert registry.find_by_capability("coding") == ("solo",)


def test_worker_type_rejects_string_capabilities() -> None:
    with pytest.raises(ValueError, match="sequence of strings"):
        WorkerType(name="x", capabilities="coding", tools=())  # type: ignore[arg-type]
