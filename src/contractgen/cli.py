"""Command line entrypoint: load a routing declaration, write the document and the client."""
from __future__ import annotations

import argparse
import importlib
import importlib.util
import logging
import sys
import time
from dataclasses import dataclass, replace
from pathlib import Path
from types import ModuleType
from typing import Any, Iterable

from watchfiles import DefaultFilter, watch

from contractgen.client import ClientConfig, ClientGenerator
from contractgen.config import Settings
from contractgen.document import ApiInfo, DocumentAssembler
from contractgen.errors import ContractError, RoutingError
from contractgen.routing import collect_routes

logger = logging.getLogger("contractgen")

DEFAULT_ATTRIBUTE = "routing"


@dataclass(frozen=True)
class ContractSpec:
    """Routing plus document info, for modules that want to own their metadata."""
    routing: Any
    info: ApiInfo | None = None
    client_class_name: str | None = None


@dataclass(frozen=True)
class RoutingTarget:
    """``package.module:attr`` or ``path/to/file.py:attr``."""
    location: str
    attribute: str = DEFAULT_ATTRIBUTE

    @classmethod
    def parse(cls, raw_target: str) -> "RoutingTarget":
        location, separator, attribute = raw_target.rpartition(":")
        if not separator or not location or "/" in attribute or "\\" in attribute:
            return cls(raw_target)
        return cls(location, attribute or DEFAULT_ATTRIBUTE)

    @property
    def is_file(self) -> bool:
        return self.location.endswith(".py") or "/" in self.location or "\\" in self.location


@dataclass(frozen=True)
class GeneratedOutputs:
    document_text: str
    client_text: str


# ============================================================
# Loading
# ============================================================

def _load_module_from_path(path: Path) -> ModuleType:
    if not path.is_file():
        raise RoutingError(f"Routing file not found: {path}")

    module_name = f"contractgen_routing_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RoutingError(f"Failed to load routing module from {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def _reload_package(module_name: str) -> ModuleType:
    """Drop the target's whole top-level package from the import cache and import it again."""
    package = module_name.split(".", 1)[0]
    for name in [name for name in sys.modules if name == package or name.startswith(package + ".")]:
        del sys.modules[name]
    importlib.invalidate_caches()
    return importlib.import_module(module_name)


def load_module(target: RoutingTarget, *, reload: bool = False) -> ModuleType:
    try:
        if target.is_file:
            return _load_module_from_path(Path(target.location).resolve())
        if reload and target.location in sys.modules:
            return _reload_package(target.location)
        return importlib.import_module(target.location)
    except ImportError as import_error:
        raise RoutingError(f"Cannot import {target.location}: {import_error}") from import_error


def load_contract(target: RoutingTarget, *, reload: bool = False) -> ContractSpec:
    module = load_module(target, reload=reload)
    if not hasattr(module, target.attribute):
        raise RoutingError(
            f"{target.location} has no attribute {target.attribute!r}.\n"
            f"Fix: expose the routing declaration as {target.location}:{target.attribute}"
        )
    loaded = getattr(module, target.attribute)
    if isinstance(loaded, ContractSpec):
        return loaded
    return ContractSpec(routing=loaded)


def watched_directory(target: RoutingTarget) -> Path:
    if target.is_file:
        return Path(target.location).resolve().parent
    module = load_module(target)
    module_file = getattr(module, "__file__", None)
    if module_file is None:
        raise RoutingError(f"Cannot watch {target.location}: module has no source file")
    return Path(module_file).resolve().parent


# ============================================================
# Generation
# ============================================================

def build_info(settings: Settings, contract: ContractSpec, explicit_fields: Iterable[str] = ()) -> ApiInfo:
    """Settings build the info unless the contract ships one; explicit CLI flags always win."""
    from_settings = {
        "title": settings.title,
        "version": settings.version,
        "description": settings.description,
        "servers": tuple(settings.servers),
    }
    if contract.info is None:
        return ApiInfo(**from_settings)
    return replace(contract.info, **{name: from_settings[name] for name in explicit_fields if name in from_settings})


def generate(contract: ContractSpec, settings: Settings, explicit_fields: Iterable[str] = ()) -> GeneratedOutputs:
    entries = collect_routes(contract.routing)
    logger.debug("routes: %s", ", ".join(f"{entry.method.upper()} {entry.path}" for entry in entries) or "<none>")

    document = DocumentAssembler(build_info(settings, contract, explicit_fields), max_depth=settings.max_depth).assemble(entries)
    document_text = document.to_json() + "\n" if settings.document_format == "json" else document.to_yaml()

    class_name = settings.client_class_name
    if contract.client_class_name and "client_class_name" not in explicit_fields:
        class_name = contract.client_class_name
    artifact = ClientGenerator(ClientConfig(class_name=class_name, max_depth=settings.max_depth)).generate(entries)
    return GeneratedOutputs(document_text=document_text, client_text=artifact.print())


def write_outputs(outputs: GeneratedOutputs, settings: Settings) -> None:
    if settings.doc_out is None and settings.client_out is None:
        print(outputs.document_text, end="")
        return

    for output_path, text, label in (
        (settings.doc_out, outputs.document_text, "document"),
        (settings.client_out, outputs.client_text, "client"),
    ):
        if output_path is None:
            continue
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        logger.info("%s -> %s", label, output_path)


def run_once(target: RoutingTarget, settings: Settings, explicit_fields: Iterable[str] = (), *, reload: bool = False) -> GeneratedOutputs:
    contract = load_contract(target, reload=reload)
    outputs = generate(contract, settings, explicit_fields)
    write_outputs(outputs, settings)
    return outputs


def _report(error: BaseException) -> None:
    print(f"contractgen: {error}", file=sys.stderr)
    for note in getattr(error, "__notes__", ()):
        print(f"contractgen: {note}", file=sys.stderr)


# ============================================================
# Watch mode
# ============================================================

class SourceFilter(DefaultFilter):
    def __call__(self, change, path: str) -> bool:
        normalized = path.replace("\\", "/")
        if "__pycache__" in normalized or normalized.endswith(".pyc"):
            return False
        return normalized.endswith(".py") and super().__call__(change, path)


def watch_target(target: RoutingTarget, settings: Settings, explicit_fields: Iterable[str] = ()) -> int:
    explicit = tuple(explicit_fields)
    watch_dir = watched_directory(target)
    logger.info("watching %s", watch_dir)

    for changes in watch(str(watch_dir), watch_filter=SourceFilter(), debounce=300):
        changed = sorted({changed_path.replace("\\", "/") for (_change, changed_path) in changes})
        logger.info("change detected: %s", ", ".join(changed))
        try:
            run_once(target, settings, explicit, reload=True)
        except ContractError as error:
            _report(error)
            continue
        except Exception:
            # Errors raised by the routing module itself.
            logger.exception("failed to load %s", target.location)
            continue
        logger.info("regenerated")
        time.sleep(0.05)
    return 0


# ============================================================
# Entrypoint
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser; every flag overrides the matching CONTRACTGEN_* setting."""
    parser = argparse.ArgumentParser(
        prog="contractgen",
        description="Generate an OpenAPI document and a TypeScript client from a routing declaration.",
    )
    parser.add_argument("routing", help="package.module:attribute or path/to/file.py:attribute")
    parser.add_argument("--doc-out", type=Path, default=None, help="Write the document here.")
    parser.add_argument("--client-out", type=Path, default=None, help="Write the TypeScript client here.")
    parser.add_argument("--format", dest="document_format", choices=("yaml", "json"), default=None)
    parser.add_argument("--title", default=None)
    parser.add_argument("--version", dest="api_version", default=None)
    parser.add_argument("--server", dest="servers", action="append", default=None, help="Server URL (repeatable).")
    parser.add_argument("--client-class", dest="client_class_name", default=None)
    parser.add_argument("--watch", action="store_true", help="Regenerate when the routing source changes.")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    parsed_args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.INFO,
        format="[contractgen] %(message)s",
        stream=sys.stderr,
    )

    overrides = {
        "title": parsed_args.title,
        "version": parsed_args.api_version,
        "servers": parsed_args.servers,
        "doc_out": parsed_args.doc_out,
        "client_out": parsed_args.client_out,
        "document_format": parsed_args.document_format,
        "client_class_name": parsed_args.client_class_name,
    }
    settings = Settings().with_overrides(**overrides)
    explicit_fields = tuple(name for name, value in overrides.items() if value is not None)
    target = RoutingTarget.parse(parsed_args.routing)

    try:
        run_once(target, settings, explicit_fields)
    except ContractError as error:
        _report(error)
        return 1

    if parsed_args.watch:
        return watch_target(target, settings, explicit_fields)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
