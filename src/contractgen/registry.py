"""Per-run identity -> name registry used to emit shared and recursive schemas once."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from contractgen.errors import ComponentNameCollisionError
from contractgen.naming import to_identifier, to_pascal_case
from contractgen.schema import SchemaNode

logger = logging.getLogger(__name__)

Identity = int


@dataclass
class ReferenceRegistry:
    """
    Assigns stable names to schema nodes that must be emitted as named components.

    One registry belongs to exactly one generation run; the document assembler and
    the client generator each create their own, so names never leak between them.

    Lifecycle of a tracked node:
      mark_in_flight -> (re-entry => reserve) -> clear_in_flight -> complete
    and, once a name exists for it, define(name, body) stores the rendered body.
    """
    fallback_hint: str = "Schema"

    names_by_identity: dict[Identity, str] = field(default_factory=dict)
    identities_by_name: dict[str, Identity] = field(default_factory=dict)
    used_names: set[str] = field(default_factory=set)

    in_flight: set[Identity] = field(default_factory=set)
    completed_bodies: dict[Identity, Any] = field(default_factory=dict)
    component_bodies: dict[str, Any] = field(default_factory=dict)

    anonymous_counter: int = 0

    # ---- identities

    @staticmethod
    def identity_of(node: SchemaNode) -> Identity:
        """Structural identity of a node object (stable for the node's lifetime)."""
        return node.identity

    # ---- names

    def reserve_export_name(self, preferred_export_name: str) -> str:
        """
        Returns a unique export symbol name and reserves it immediately.
        Collisions get numeric suffixes starting at 2.
        """
        if preferred_export_name not in self.used_names:
            self.used_names.add(preferred_export_name)
            return preferred_export_name

        suffix_number = 2
        while f"{preferred_export_name}{suffix_number}" in self.used_names:
            suffix_number += 1

        unique_name = f"{preferred_export_name}{suffix_number}"
        self.used_names.add(unique_name)
        return unique_name

    def reserve(self, identity: Identity, hint: str = "") -> str:
        """Return the name of ``identity``, assigning one from ``hint`` on first call."""
        existing_name = self.names_by_identity.get(identity)
        if existing_name is not None:
            return existing_name

        preferred_name = to_pascal_case(hint)
        if not preferred_name:
            self.anonymous_counter += 1
            preferred_name = f"{self.fallback_hint}{self.anonymous_counter}"
        preferred_name = to_identifier(preferred_name, fallback=self.fallback_hint)

        name = self.reserve_export_name(preferred_name)
        self.names_by_identity[identity] = name
        self.identities_by_name[name] = identity
        logger.debug("reserved component name %s for identity %s", name, identity)
        return name

    def claim(self, identity: Identity, name: str) -> str:
        """Bind an explicit, caller-chosen name; a second identity claiming it is fatal."""
        existing_name = self.names_by_identity.get(identity)
        if existing_name is not None:
            if existing_name != name:
                raise ComponentNameCollisionError(name, f"identity {identity} already named {existing_name}", name)
            return name

        owner = self.identities_by_name.get(name)
        if owner is not None and owner != identity:
            raise ComponentNameCollisionError(name, f"schema node #{owner}", f"schema node #{identity}")
        if owner is None and name in self.used_names:
            raise ComponentNameCollisionError(name, "generated name", f"schema node #{identity}")

        self.used_names.add(name)
        self.names_by_identity[identity] = name
        self.identities_by_name[name] = identity
        return name

    def name_of(self, identity: Identity) -> str | None:
        return self.names_by_identity.get(identity)

    # ---- in-flight bracketing

    def is_in_flight(self, identity: Identity) -> bool:
        return identity in self.in_flight

    def mark_in_flight(self, identity: Identity) -> None:
        self.in_flight.add(identity)

    def clear_in_flight(self, identity: Identity) -> None:
        self.in_flight.discard(identity)

    # ---- bodies

    def complete(self, identity: Identity, body: Any) -> None:
        """Remember the fully rendered body of a node for later shared reuse."""
        self.completed_bodies[identity] = body

    def is_completed(self, identity: Identity) -> bool:
        return identity in self.completed_bodies

    def completed_body(self, identity: Identity) -> Any:
        return self.completed_bodies[identity]

    def define(self, name: str, body: Any) -> None:
        """Assign the body of a named component (once)."""
        if name in self.component_bodies:
            return
        if name not in self.identities_by_name:
            raise KeyError(f"Component {name} was never reserved")
        self.component_bodies[name] = body
        logger.debug("defined component %s", name)

    def is_defined(self, name: str) -> bool:
        return name in self.component_bodies

    def components(self) -> dict[str, Any]:
        """Defined components in definition order."""
        return dict(self.component_bodies)

    def pending_names(self) -> list[str]:
        """Names reserved for an identity but never given a body."""
        return [name for name in self.identities_by_name if name not in self.component_bodies]
