"""Tests for MetadataResolver: relationship kinds, keys and configuration errors."""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from shop_models import Customer, Order, OrderLine, Passport, Person, Product, ProductTag, Tag

from relcascade import (
    CascadeOperation,
    ConfigurationError,
    EnclosedType,
    IncorrectRelationshipError,
    RelationshipKind,
    column,
    foreign_key,
    many_to_many,
    many_to_one,
    one_to_many,
    primary_key,
    relationship,
    text_blob,
)
from relcascade.metadata.resolver import MetadataResolver, enclosed_type, unwrap_optional

# --- Inferred relationships ---


@dataclass
class Author:
    AuthorKey: int | None = primary_key()
    name: str = ""
    books: list[Book] | None = relationship(cascade=CascadeOperation.ALL)
    profile: Profile | None = relationship()


@dataclass
class Book:
    id: int | None = primary_key()
    author_foreign_key: int | None = None
    author: Author | None = relationship()


@dataclass
class Profile:
    id: int | None = primary_key()
    AuthorId: int | None = None
    author: Author | None = relationship(inverse_property="")


@dataclass
class Node:
    id: int | None = primary_key()
    parent_id: int | None = foreign_key("Node")
    parent: Node | None = many_to_one(inverse_property="children")
    children: list[Node] | None = one_to_many(inverse_property="parent")


@dataclass
class Renamed:
    id: int | None = primary_key(name="renamed_pk")
    label: str = column(name="label_text", default="")


# --- Misconfigured types ---


@dataclass
class Target:
    id: int | None = primary_key()


@dataclass
class MissingForeignKey:
    id: int | None = primary_key()
    target: Target | None = many_to_one()


@dataclass
class StringRelationship:
    id: int | None = primary_key()
    target: str | None = many_to_one()


@dataclass
class StringBlob:
    id: int | None = primary_key()
    notes_json: str | None = None
    notes: str | None = text_blob("notes_json")


@dataclass
class BlobWithoutColumn:
    id: int | None = primary_key()
    notes: list[str] | None = text_blob("missing")


@dataclass
class UnrelatedLink:
    left: int | None = None
    right: int | None = None


@dataclass
class BadManyToMany:
    id: int | None = primary_key()
    targets: list[Target] | None = many_to_many(UnrelatedLink)


@dataclass
class AmbiguousLink:
    first: int | None = foreign_key("SelfLinked")
    second: int | None = foreign_key("SelfLinked")


@dataclass
class SelfLinked:
    id: int | None = primary_key()
    peers: list[SelfLinked] | None = many_to_many(AmbiguousLink, inverse_property="")


@dataclass
class ScalarOneToMany:
    id: int | None = primary_key()
    target: Target | None = one_to_many()


@dataclass
class TwoKeys:
    a: int | None = primary_key()
    b: int | None = primary_key()


class NotADataclass:
    pass


@pytest.fixture
def resolver() -> MetadataResolver:
    return MetadataResolver()


class TestAnnotationHelpers:
    def test_unwrap_optional(self) -> None:
        assert unwrap_optional(int | None) is int
        assert unwrap_optional(int) is int

    def test_enclosed_type_list(self) -> None:
        assert enclosed_type(list[Order] | None) == (Order, EnclosedType.LIST)

    def test_enclosed_type_tuple(self) -> None:
        assert enclosed_type(tuple[Order, ...]) == (Order, EnclosedType.TUPLE)

    def test_enclosed_type_scalar(self) -> None:
        assert enclosed_type(Order | None) == (Order, EnclosedType.NONE)


class TestEntityInfo:
    def test_table_and_columns(self, resolver: MetadataResolver) -> None:
        info = resolver.entity(Customer)
        assert info.table_name == "customers"
        assert [c.field_name for c in info.columns] == ["id", "name", "preferences_json"]
        assert info.primary_key is not None
        assert info.primary_key.autoincrement is True

    def test_default_table_name_is_class_name(self, resolver: MetadataResolver) -> None:
        assert resolver.entity(Target).table_name == "Target"

    def test_explicit_column_names(self, resolver: MetadataResolver) -> None:
        info = resolver.entity(Renamed)
        assert info.column("id").column_name == "renamed_pk"
        assert info.column("label").column_name == "label_text"

    def test_cached(self, resolver: MetadataResolver) -> None:
        assert resolver.entity(Customer) is resolver.entity(Customer)
        assert resolver.resolve(Customer) is resolver.entity(Customer).relationships

    def test_unknown_fields_raise_key_error(self, resolver: MetadataResolver) -> None:
        info = resolver.entity(Customer)
        with pytest.raises(KeyError):
            info.column("orders")
        with pytest.raises(KeyError):
            info.relationship("name")


class TestRelationshipKinds:
    def test_one_to_many(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Customer).relationship("orders")
        assert rel.kind is RelationshipKind.ONE_TO_MANY
        assert rel.target is Order
        assert rel.enclosed is EnclosedType.LIST
        assert rel.inverse_foreign_key == "customer_id"
        assert rel.inverse_property == "customer"
        assert rel.cascade == CascadeOperation.ALL

    def test_many_to_one(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Order).relationship("customer")
        assert rel.kind is RelationshipKind.MANY_TO_ONE
        assert rel.foreign_key == "customer_id"
        assert rel.inverse_property == "orders"
        assert rel.inverse_is_collection is True
        assert rel.owner_holds_key is True

    def test_convention_foreign_key(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(OrderLine).relationship("order")
        assert rel.foreign_key == "order_id"

    def test_many_to_many(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Product).relationship("tags")
        assert rel.kind is RelationshipKind.MANY_TO_MANY
        assert rel.many_to_many is not None
        assert rel.many_to_many.through is ProductTag
        assert rel.many_to_many.origin_field == "product_id"
        assert rel.many_to_many.destination_field == "tag_code"

    def test_many_to_many_tuple_inverse(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Tag).relationship("products")
        assert rel.enclosed is EnclosedType.TUPLE
        assert rel.many_to_many is not None
        assert rel.many_to_many.origin_field == "tag_code"
        assert rel.many_to_many.destination_field == "product_id"

    def test_inbound_many_to_many(self, resolver: MetadataResolver) -> None:
        resolver.entity(Product)
        inbound = resolver.inbound_many_to_many(Tag)
        assert [r.navigation for r in inbound] == ["tags"]

    def test_one_to_one_owner_side(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Person).relationship("passport")
        assert rel.kind is RelationshipKind.ONE_TO_ONE
        assert rel.foreign_key == "passport_id"
        assert rel.inverse_foreign_key is None

    def test_one_to_one_inverse_side(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Passport).relationship("holder")
        assert rel.foreign_key is None
        assert rel.inverse_foreign_key == "passport_id"
        assert rel.read_only is True

    def test_text_blob(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Customer).relationship("preferences")
        assert rel.is_text_blob
        assert rel.text_field == "preferences_json"


class TestInference:
    def test_collection_infers_one_to_many(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Author).relationship("books")
        assert rel.kind is RelationshipKind.ONE_TO_MANY
        assert rel.inverse_foreign_key == "author_foreign_key"

    def test_collection_inverse_infers_many_to_one(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Book).relationship("author")
        assert rel.kind is RelationshipKind.MANY_TO_ONE
        assert rel.foreign_key == "author_foreign_key"

    def test_single_infers_one_to_one(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Author).relationship("profile")
        assert rel.kind is RelationshipKind.ONE_TO_ONE
        assert rel.inverse_foreign_key == "AuthorId"
        assert rel.foreign_key is None

    def test_disabled_inverse_property(self, resolver: MetadataResolver) -> None:
        rel = resolver.entity(Profile).relationship("author")
        assert rel.inverse_property is None
        assert rel.foreign_key == "AuthorId"

    def test_self_reference(self, resolver: MetadataResolver) -> None:
        info = resolver.entity(Node)
        assert info.relationship("parent").foreign_key == "parent_id"
        assert info.relationship("children").inverse_foreign_key == "parent_id"
        assert info.relationship("children").inverse_property == "parent"


class TestConfigurationErrors:
    def test_many_to_one_without_foreign_key(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="foreign key") as exc_info:
            resolver.entity(MissingForeignKey)
        assert exc_info.value.type_name == "MissingForeignKey"
        assert exc_info.value.field_name == "target"

    def test_relationship_typed_as_str(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="str"):
            resolver.entity(StringRelationship)

    def test_text_blob_typed_as_str(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="str"):
            resolver.entity(StringBlob)

    def test_text_blob_without_column(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="missing"):
            resolver.entity(BlobWithoutColumn)

    def test_many_to_many_without_link_columns(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="UnrelatedLink"):
            resolver.entity(BadManyToMany)

    def test_ambiguous_link_columns(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="ambiguous"):
            resolver.entity(SelfLinked)

    def test_scalar_one_to_many(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError, match="list or tuple"):
            resolver.entity(ScalarOneToMany)

    def test_two_primary_keys(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ConfigurationError, match="more than one primary key"):
            resolver.entity(TwoKeys)

    def test_not_a_dataclass(self, resolver: MetadataResolver) -> None:
        with pytest.raises(ConfigurationError, match="not a dataclass"):
            resolver.entity(NotADataclass)

    def test_failed_type_is_not_cached(self, resolver: MetadataResolver) -> None:
        with pytest.raises(IncorrectRelationshipError):
            resolver.entity(MissingForeignKey)
        with pytest.raises(IncorrectRelationshipError):
            resolver.entity(MissingForeignKey)
