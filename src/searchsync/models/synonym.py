"""Synonym rules.

Two rules are the same rule when their term sets are equal. Stored
identifiers are only a handle for backends that need one; reconciliation
never compares them.
"""

from __future__ import annotations

import hashlib
from typing import Annotated, Literal

from pydantic import BaseModel, Field

SynonymKey = tuple[str | None, frozenset[str]]


class _SynonymBase(BaseModel):
    model_config = {"frozen": True}

    id: str | None = Field(default=None, description="Optional backend identifier")
    synonyms: tuple[str, ...] = Field(min_length=1, description="Terms of the rule")

    @property
    def root(self) -> str | None:
        return None

    @property
    def key(self) -> SynonymKey:
        """Structural identity: the root (if any) plus the unordered term set."""
        return (self.root, frozenset(self.synonyms))

    @property
    def rule_id(self) -> str:
        """The explicit id, or a stable id derived from :attr:`key`."""
        if self.id:
            return self.id
        root, terms = self.key
        material = "\x1f".join([root or ""] + sorted(terms))
        return "syn-" + hashlib.sha1(material.encode("utf-8")).hexdigest()[:16]


class Synonym(_SynonymBase):
    """Symmetric rule: every term is equivalent to every other term."""

    kind: Literal["symmetric"] = "symmetric"


class OneWaySynonym(_SynonymBase):
    """One-way rule: the expansions match the root, but not vice versa."""

    kind: Literal["one_way"] = "one_way"
    root_term: str = Field(min_length=1, alias="root", description="Root term")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def root(self) -> str | None:
        return self.root_term


SynonymRule = Annotated[Synonym | OneWaySynonym, Field(discriminator="kind")]
