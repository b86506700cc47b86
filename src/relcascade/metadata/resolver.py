"""MetadataResolver: turns dataclass declarations into EntityInfo.

Resolution happens once per record type and the result is cached for the
life of the process. Every configuration problem (missing foreign key,
ambiguous many-to-many columns, a string-typed blob) is raised here, on
first access to the type, instead of halfway through a read or write.

The cache is append-only. Two threads resolving the same type at once
both compute the same descriptors; only the first result is kept, so the
lock guards the fill and nothing else.
"""

from __future__ import annotations

import dataclasses
import logging
import sys
import threading
import types
import typing
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from relcascade.domain.fields import ColumnSpec, RelationshipSpec, field_spec
from relcascade.domain.types import CascadeOperation, EnclosedType, RelationshipKind
from relcascade.errors import ConfigurationError, IncorrectRelationshipError
from relcascade.metadata.descriptors import (
    ColumnInfo,
    EntityInfo,
    ManyToManyInfo,
    RelationshipDescriptor,
)

logger = logging.getLogger(__name__)

CONVENTION_FORMATS = ("{}id", "{}key", "{}foreignkey")


@dataclass(frozen=True)
class _Declared:
    """A dataclass field with its declaration and resolved annotation."""

    name: str
    spec: ColumnSpec | RelationshipSpec | None
    annotation: Any
    field: dataclasses.Field[Any]

    @property
    def is_relationship(self) -> bool:
        return isinstance(self.spec, RelationshipSpec)


def _squash(name: str) -> str:
    return name.replace("_", "").lower()


def unwrap_optional(annotation: Any) -> Any:
    """Strip ``None`` from ``X | None`` / ``Optional[X]``."""
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def enclosed_type(annotation: Any) -> tuple[Any, EnclosedType]:
    """Split a navigation annotation into element type and container shape."""
    tp = unwrap_optional(annotation)
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin is list and len(args) == 1:
        return args[0], EnclosedType.LIST
    if origin is tuple and len(args) == 2 and args[1] is Ellipsis:
        return args[0], EnclosedType.TUPLE
    return tp, EnclosedType.NONE


def _field_default(f: dataclasses.Field[Any]) -> Any:
    if f.default is not dataclasses.MISSING:
        return f.default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory()
    return None


class MetadataResolver:
    """Per-process cache of :class:`EntityInfo` keyed by record type."""

    def __init__(self) -> None:
        self._entities: dict[type, EntityInfo] = {}
        self._declared: dict[type, tuple[_Declared, ...]] = {}
        self._columns: dict[type, tuple[ColumnInfo, ...]] = {}
        self._inbound_links: dict[type, list[RelationshipDescriptor]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def entity(self, entity_type: type) -> EntityInfo:
        """Return the cached :class:`EntityInfo` for *entity_type*.

        Raises:
            ConfigurationError: If the type or one of its relationships
                cannot be interpreted.
        """
        info = self._entities.get(entity_type)
        if info is not None:
            return info

        info = self._build_entity(entity_type)
        with self._lock:
            existing = self._entities.setdefault(entity_type, info)
            if existing is info:
                for rel in info.relationships:
                    if rel.kind is RelationshipKind.MANY_TO_MANY:
                        self._inbound_links.setdefault(rel.target, []).append(rel)
        if existing is info:
            logger.debug(
                "Resolved %s: table=%s relationships=%s",
                entity_type.__name__,
                info.table_name,
                [rel.navigation for rel in info.relationships],
            )
            # Resolve the connected types too, so inbound many-to-many links
            # are known before any record of a target type is deleted.
            for rel in info.relationships:
                if rel.is_text_blob:
                    continue
                self.entity(rel.target)
                if rel.many_to_many is not None:
                    self.entity(rel.many_to_many.through)
        return existing

    def resolve(self, entity_type: type) -> tuple[RelationshipDescriptor, ...]:
        """Ordered relationship descriptors of *entity_type*."""
        return self.entity(entity_type).relationships

    def inbound_many_to_many(self, entity_type: type) -> list[RelationshipDescriptor]:
        """Many-to-many descriptors, resolved so far, that target *entity_type*."""
        with self._lock:
            return list(self._inbound_links.get(entity_type, ()))

    # ------------------------------------------------------------------
    # Field discovery
    # ------------------------------------------------------------------

    def _declared_fields(self, entity_type: type) -> tuple[_Declared, ...]:
        cached = self._declared.get(entity_type)
        if cached is not None:
            return cached

        if not (isinstance(entity_type, type) and dataclasses.is_dataclass(entity_type)):
            msg = f"{entity_type!r} is not a dataclass record type"
            raise ConfigurationError(msg)

        try:
            hints = typing.get_type_hints(entity_type)
        except NameError as exc:
            msg = f"Cannot resolve annotations of {entity_type.__name__}: {exc}"
            raise ConfigurationError(msg) from exc

        declared = tuple(
            _Declared(
                name=f.name,
                spec=field_spec(f),
                annotation=hints.get(f.name, Any),
                field=f,
            )
            for f in dataclasses.fields(entity_type)
        )
        self._declared.setdefault(entity_type, declared)
        return declared

    def _resolve_type_name(self, owner: type, ref: type | str, context: str) -> type:
        if isinstance(ref, type):
            return ref
        module = sys.modules.get(owner.__module__)
        candidate = getattr(module, ref, None) if module is not None else None
        if not isinstance(candidate, type):
            msg = f"{owner.__name__}.{context}: cannot resolve type name {ref!r}"
            raise ConfigurationError(msg)
        return candidate

    def _column_infos(self, entity_type: type) -> tuple[ColumnInfo, ...]:
        cached = self._columns.get(entity_type)
        if cached is not None:
            return cached

        columns: list[ColumnInfo] = []
        for d in self._declared_fields(entity_type):
            if d.is_relationship:
                continue
            spec = d.spec if isinstance(d.spec, ColumnSpec) else ColumnSpec()
            foreign_type = None
            if spec.foreign_type is not None:
                foreign_type = self._resolve_type_name(entity_type, spec.foreign_type, d.name)
            columns.append(
                ColumnInfo(
                    field_name=d.name,
                    column_name=spec.name or d.name,
                    python_type=unwrap_optional(d.annotation),
                    default=_field_default(d.field),
                    init=d.field.init,
                    primary_key=spec.primary_key,
                    autoincrement=spec.autoincrement,
                    foreign_type=foreign_type,
                )
            )

        keys = [c for c in columns if c.primary_key]
        if len(keys) > 1:
            msg = (
                f"{entity_type.__name__} declares more than one primary key: "
                f"{[c.field_name for c in keys]}"
            )
            raise ConfigurationError(msg)

        result = tuple(columns)
        self._columns.setdefault(entity_type, result)
        return result

    def _primary_key(self, entity_type: type) -> ColumnInfo | None:
        return next((c for c in self._column_infos(entity_type) if c.primary_key), None)

    # ------------------------------------------------------------------
    # Entity construction
    # ------------------------------------------------------------------

    def _build_entity(self, entity_type: type) -> EntityInfo:
        columns = self._column_infos(entity_type)
        relationships = tuple(
            self._build_relationship(entity_type, d)
            for d in self._declared_fields(entity_type)
            if d.is_relationship
        )
        return EntityInfo(
            entity_type=entity_type,
            table_name=vars(entity_type).get("__tablename__", entity_type.__name__),
            columns=columns,
            primary_key=next((c for c in columns if c.primary_key), None),
            relationships=relationships,
        )

    def _build_relationship(self, owner: type, declared: _Declared) -> RelationshipDescriptor:
        spec = declared.spec
        assert isinstance(spec, RelationshipSpec)

        if spec.kind is RelationshipKind.TEXT_BLOB:
            return self._build_text_blob(owner, declared, spec)

        def fail(message: str) -> IncorrectRelationshipError:
            return IncorrectRelationshipError(owner.__name__, declared.name, message)

        element, enclosed = enclosed_type(declared.annotation)
        if spec.target is not None:
            element = self._resolve_type_name(owner, spec.target, declared.name)
        if element is str:
            raise fail("relationship field cannot be typed as str")
        if not (isinstance(element, type) and dataclasses.is_dataclass(element)):
            raise fail(f"target {element!r} is not a dataclass record type")
        target: type = element

        inverse = self._inverse_field(owner, declared, target)
        inverse_spec = inverse.spec if inverse is not None else None
        assert inverse_spec is None or isinstance(inverse_spec, RelationshipSpec)
        inverse_enclosed = (
            enclosed_type(inverse.annotation)[1] if inverse is not None else EnclosedType.NONE
        )

        kind = spec.kind or self._infer_kind(spec, enclosed, inverse_enclosed)
        fk_name = spec.foreign_key or (inverse_spec.inverse_foreign_key if inverse_spec else None)
        inverse_fk_name = spec.inverse_foreign_key or (
            inverse_spec.foreign_key if inverse_spec else None
        )

        owner_pk = self._primary_key(owner)
        target_pk = self._primary_key(target)
        foreign_key: str | None = None
        inverse_foreign_key: str | None = None
        link: ManyToManyInfo | None = None

        match kind:
            case RelationshipKind.MANY_TO_ONE:
                if enclosed is not EnclosedType.NONE:
                    raise fail("many-to-one relationship cannot be a list or tuple")
                if target_pk is None:
                    raise fail("many-to-one destination must have a primary key")
                foreign_key = self._find_foreign_key(owner, target, fk_name)
                if foreign_key is None:
                    raise fail("many-to-one origin must have a foreign key")

            case RelationshipKind.ONE_TO_ONE:
                if enclosed is not EnclosedType.NONE:
                    raise fail("one-to-one relationship cannot be a list or tuple")
                if owner_pk is None and target_pk is None:
                    raise fail("at least one side of a one-to-one must have a primary key")
                own_fk = self._find_foreign_key(owner, target, fk_name)
                other_fk = self._find_foreign_key(target, owner, inverse_fk_name)
                if own_fk is None and other_fk is None:
                    raise fail("at least one side of a one-to-one must have a foreign key")
                foreign_key = own_fk if target_pk is not None else None
                inverse_foreign_key = other_fk if owner_pk is not None else None
                if foreign_key is None and inverse_foreign_key is None:
                    raise fail("missing either foreign key or primary key for a one-to-one")

            case RelationshipKind.ONE_TO_MANY:
                if enclosed is EnclosedType.NONE:
                    raise fail("one-to-many relationship must be a list or tuple")
                if owner_pk is None:
                    raise fail("one-to-many origin must have a primary key")
                if target_pk is None:
                    raise fail("one-to-many destination must have a primary key")
                if inverse is not None and inverse_enclosed is not EnclosedType.NONE:
                    raise fail("one-to-many inverse relationship cannot be a list or tuple")
                inverse_foreign_key = self._find_foreign_key(target, owner, inverse_fk_name)
                if inverse_foreign_key is None:
                    raise fail("one-to-many destination must have a foreign key to the origin")

            case RelationshipKind.MANY_TO_MANY:
                if enclosed is EnclosedType.NONE:
                    raise fail("many-to-many relationship must be a list or tuple")
                if owner_pk is None:
                    raise fail("many-to-many origin must have a primary key")
                if target_pk is None:
                    raise fail("many-to-many destination must have a primary key")
                link = self._build_link(owner, target, spec, fk_name, inverse_fk_name, fail)

        return RelationshipDescriptor(
            owner=owner,
            navigation=declared.name,
            kind=kind,
            target=target,
            enclosed=enclosed,
            cascade=spec.cascade,
            read_only=spec.read_only,
            foreign_key=foreign_key,
            inverse_foreign_key=inverse_foreign_key,
            inverse_property=inverse.name if inverse is not None else None,
            inverse_is_collection=inverse_enclosed is not EnclosedType.NONE,
            many_to_many=link,
        )

    def _build_link(
        self,
        owner: type,
        target: type,
        spec: RelationshipSpec,
        fk_name: str | None,
        inverse_fk_name: str | None,
        fail: Callable[[str], IncorrectRelationshipError],
    ) -> ManyToManyInfo:
        if spec.through is None:
            raise fail("many-to-many relationship needs an intermediate type")
        through = self._resolve_type_name(owner, spec.through, "through")
        if not dataclasses.is_dataclass(through):
            raise fail(f"intermediate type {through.__name__} is not a dataclass record type")

        destination = self._find_foreign_key(through, target, fk_name)
        origin = self._find_foreign_key(through, owner, inverse_fk_name)
        if destination is None:
            raise fail(f"unable to find destination foreign key on {through.__name__}")
        if origin is None:
            raise fail(f"unable to find origin foreign key on {through.__name__}")
        if origin == destination:
            raise fail(
                f"ambiguous foreign keys on {through.__name__}; "
                "name both columns explicitly"
            )
        return ManyToManyInfo(through=through, origin_field=origin, destination_field=destination)

    def _build_text_blob(
        self, owner: type, declared: _Declared, spec: RelationshipSpec
    ) -> RelationshipDescriptor:
        value_type = unwrap_optional(declared.annotation)
        if value_type is str:
            raise IncorrectRelationshipError(
                owner.__name__, declared.name, "text blob field cannot be typed as str"
            )
        text_column = next(
            (c for c in self._column_infos(owner) if c.field_name == spec.text_field), None
        )
        if text_column is None:
            raise IncorrectRelationshipError(
                owner.__name__, declared.name, f"text field {spec.text_field!r} not found"
            )
        if text_column.python_type is not str:
            raise IncorrectRelationshipError(
                owner.__name__, declared.name, f"text field {spec.text_field!r} must be a str"
            )
        return RelationshipDescriptor(
            owner=owner,
            navigation=declared.name,
            kind=RelationshipKind.TEXT_BLOB,
            target=value_type,
            cascade=CascadeOperation.NONE,
            text_field=spec.text_field,
        )

    # ------------------------------------------------------------------
    # Inference helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _infer_kind(
        spec: RelationshipSpec, enclosed: EnclosedType, inverse_enclosed: EnclosedType
    ) -> RelationshipKind:
        if spec.through is not None:
            return RelationshipKind.MANY_TO_MANY
        if enclosed is not EnclosedType.NONE:
            return RelationshipKind.ONE_TO_MANY
        if inverse_enclosed is not EnclosedType.NONE:
            return RelationshipKind.MANY_TO_ONE
        return RelationshipKind.ONE_TO_ONE

    def _inverse_field(self, owner: type, declared: _Declared, target: type) -> _Declared | None:
        """Find the reciprocal navigation field on *target*.

        An explicit ``inverse_property`` wins, ``""`` disables the lookup,
        otherwise the first relationship on *target* whose element type is
        *owner* is used.
        """
        spec = declared.spec
        assert isinstance(spec, RelationshipSpec)
        if spec.inverse_property == "":
            return None

        candidates = [d for d in self._declared_fields(target) if d.is_relationship]
        if spec.inverse_property:
            found = next((d for d in candidates if d.name == spec.inverse_property), None)
            if found is None:
                raise IncorrectRelationshipError(
                    owner.__name__,
                    declared.name,
                    f"inverse property {spec.inverse_property!r} not found on {target.__name__}",
                )
            return found

        for d in candidates:
            other = d.spec
            assert isinstance(other, RelationshipSpec)
            if other.kind is RelationshipKind.TEXT_BLOB or other.inverse_property == "":
                continue
            if target is owner and d.name == declared.name:
                continue
            element, _ = enclosed_type(d.annotation)
            if other.target is not None:
                element = self._resolve_type_name(target, other.target, d.name)
            if element is owner:
                return d
        return None

    def _find_foreign_key(
        self, origin: type, destination: type, explicit_name: str | None
    ) -> str | None:
        """Locate the field on *origin* that stores a key of *destination*.

        Lookup order: the explicit field (or column) name, a field declared
        with ``foreign_key(destination)``, then the ``<Type>Id`` /
        ``<Type>Key`` / ``<Type>ForeignKey`` naming convention.
        """
        columns = self._column_infos(origin)
        if explicit_name:
            for c in columns:
                if explicit_name in (c.field_name, c.column_name):
                    return c.field_name

        for c in columns:
            if c.foreign_type is not None and issubclass(destination, c.foreign_type):
                return c.field_name

        conventions = {_squash(fmt.format(destination.__name__)) for fmt in CONVENTION_FORMATS}
        for c in columns:
            if not c.primary_key and _squash(c.field_name) in conventions:
                return c.field_name
        return None


default_resolver = MetadataResolver()
