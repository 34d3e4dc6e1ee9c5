"""CLI argument, target and settings handling tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from contractgen.cli import ContractSpec, RoutingTarget, build_info, build_parser, load_contract, main
from contractgen.config import Settings
from contractgen.document import ApiInfo
from contractgen.errors import RoutingError


def test_target_parses_module_and_attribute() -> None:
    target = RoutingTarget.parse("app.routes:api")

    assert target == RoutingTarget("app.routes", "api")
    assert target.is_file is False


def test_target_defaults_to_routing_attribute() -> None:
    assert RoutingTarget.parse("app.routes") == RoutingTarget("app.routes", "routing")


def test_file_target_is_detected() -> None:
    target = RoutingTarget.parse("api/routes.py:contract")

    assert target.location == "api/routes.py"
    assert target.attribute == "contract"
    assert target.is_file is True


def test_parser_collects_repeated_servers() -> None:
    parsed_args = build_parser().parse_args(
        ["app:routing", "--server", "https://a.example", "--server", "https://b.example", "--format", "json"]
    )

    assert parsed_args.servers == ["https://a.example", "https://b.example"]
    assert parsed_args.document_format == "json"


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTRACTGEN_TITLE", "From Env")
    monkeypatch.setenv("CONTRACTGEN_MAX_DEPTH", "12")

    settings = Settings()

    assert settings.title == "From Env"
    assert settings.max_depth == 12


def test_overrides_skip_unset_values() -> None:
    settings = Settings(title="Base", version="1.0.0").with_overrides(title=None, version="2.0.0")

    assert settings.title == "Base"
    assert settings.version == "2.0.0"


def test_contract_info_wins_over_settings_unless_flag_given() -> None:
    contract = ContractSpec(routing={}, info=ApiInfo(title="Module Title", version="3.0.0"))
    settings = Settings(title="Flag Title", version="0.1.0")

    assert build_info(settings, contract).title == "Module Title"
    assert build_info(settings, contract, ("title",)).title == "Flag Title"
    assert build_info(settings, contract, ("title", "doc_out")).version == "3.0.0"


def test_missing_attribute_is_a_routing_error(tmp_path: Path) -> None:
    routing_file = tmp_path / "routes.py"
    routing_file.write_text("other = {}\n", encoding="utf-8")

    with pytest.raises(RoutingError, match="has no attribute 'routing'"):
        load_contract(RoutingTarget(str(routing_file)))


def test_missing_file_exits_with_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main([f"{tmp_path / 'absent.py'}:routing"])

    assert exit_code == 1
    assert "contractgen: Routing file not found" in capsys.readouterr().err


def test_unknown_module_exits_with_error(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(["contractgen_missing_routes_module:routing"])

    assert exit_code == 1
    assert "Cannot import contractgen_missing_routes_module" in capsys.readouterr().err


def test_reload_picks_up_changed_submodules(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    package_dir = tmp_path / "reloaded_routes_pkg"
    package_dir.mkdir()
    (package_dir / "__init__.py").write_text("", encoding="utf-8")
    (package_dir / "users.py").write_text("PATH = 'users'\n", encoding="utf-8")
    (package_dir / "api.py").write_text(
        "from reloaded_routes_pkg.users import PATH\n\nrouting = {PATH: {}}\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    target = RoutingTarget.parse("reloaded_routes_pkg.api:routing")

    assert load_contract(target).routing == {"users": {}}

    (package_dir / "users.py").write_text("PATH = 'members-renamed'\n", encoding="utf-8")

    assert load_contract(target, reload=True).routing == {"members-renamed": {}}
    for name in [name for name in sys.modules if name.startswith("reloaded_routes_pkg")]:
        sys.modules.pop(name)
