"""Query language for searching the index.

Terms:
    word     match the word in the basename (+50 at the start, +10 elsewhere)
    /word    match the word in any ancestor directory name (deeper scores higher)
    //word   match the word in the direct parent directory name
    word/    trailing slash: the word must match exactly, not just partly
    /        only directories
    f/       only files

Every term must match for an entry to be returned. Case handling defaults to
"smart": case-insensitive unless the word contains an uppercase letter.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from pathdex.index.models import IndexEntry, is_within
from pathdex.index.store import IndexStore


class CaseOption(str, Enum):
    MATCH = "match"
    IGNORE = "ignore"
    SMART = "smart"


class FileType(str, Enum):
    ALL = "all"
    FILES = "files"
    DIRS = "dirs"


class TermKind(Enum):
    NAME = "name"
    PATH = "path"
    PARENT = "parent"


def _casefold_pair(candidate: str, word: str, case: CaseOption) -> tuple[str, str]:
    if case is CaseOption.MATCH:
        return candidate, word
    if case is CaseOption.SMART and word.lower() != word:
        return candidate, word
    return candidate.lower(), word.lower()


@dataclass(frozen=True, slots=True)
class Keyword:
    word: str
    exact: bool = False

    @classmethod
    def parse(cls, raw: str, *, exact: bool = False) -> Keyword:
        return cls(word=raw.strip().strip("/"), exact=exact)

    def is_at_beginning(self, candidate: str, case: CaseOption) -> bool:
        cand, word = _casefold_pair(candidate, self.word, case)
        return cand.startswith(word)

    def is_in(self, candidate: str, case: CaseOption) -> bool:
        cand, word = _casefold_pair(candidate, self.word, case)
        if self.exact:
            return cand == word
        return word in cand


@dataclass(frozen=True, slots=True)
class Term:
    kind: TermKind
    keyword: Keyword


def parse_term(raw: str) -> Term | FileType:
    """Parse one query word into a Term or a file type restriction."""
    if raw == "/":
        return FileType.DIRS
    if raw == "f/":
        return FileType.FILES
    keyword = Keyword.parse(raw, exact=raw.endswith("/"))
    if raw.startswith("//"):
        return Term(TermKind.PARENT, keyword)
    if raw.startswith("/"):
        return Term(TermKind.PATH, keyword)
    return Term(TermKind.NAME, keyword)


@dataclass
class Query:
    """A parsed query against the index."""

    terms: list[Term] = field(default_factory=list)
    file_type: FileType = FileType.ALL
    case: CaseOption = CaseOption.SMART
    substring: str | None = None
    root: str | None = None
    limit: int | None = None

    @classmethod
    def parse(
        cls,
        words: Iterable[str] = (),
        *,
        substring: str | None = None,
        file_type: FileType | None = None,
        case: CaseOption = CaseOption.SMART,
        root: str | None = None,
        limit: int | None = None,
    ) -> Query:
        query = cls(case=case, substring=substring or None, root=root, limit=limit)
        for raw in words:
            if not raw.strip():
                continue
            parsed = parse_term(raw)
            if isinstance(parsed, FileType):
                # Later type words replace earlier ones
                query.file_type = parsed
            elif parsed.keyword.word:
                query.terms.append(parsed)
        if file_type is not None:
            query.file_type = file_type
        return query

    def score(self, entry: IndexEntry) -> int | None:
        """Score an entry; None means the entry does not match."""
        if self.file_type is FileType.FILES and entry.is_directory:
            return None
        if self.file_type is FileType.DIRS and not entry.is_directory:
            return None
        if self.root is not None and (
            entry.path == self.root or not is_within(entry.path, self.root)
        ):
            return None

        basename = os.path.basename(entry.path)
        if self.substring is not None:
            cand, word = _casefold_pair(basename, self.substring, self.case)
            if word not in cand:
                return None

        score = 0
        for term in self.terms:
            keyword = term.keyword
            if term.kind is TermKind.NAME:
                if not keyword.exact and keyword.is_at_beginning(basename, self.case):
                    score += 50
                elif keyword.is_in(basename, self.case):
                    score += 10
                else:
                    return None
            elif term.kind is TermKind.PATH:
                in_path = False
                weight = 20
                # Deepest ancestor first
                for component in reversed(entry.parent.split(os.sep)):
                    if component and keyword.is_in(component, self.case):
                        in_path = True
                        score += weight
                    weight -= 4
                if not in_path:
                    return None
            elif term.kind is TermKind.PARENT:
                if not keyword.is_in(os.path.basename(entry.parent), self.case):
                    return None
                score += 1
        return score

    def run(self, store: IndexStore) -> list[IndexEntry]:
        """Evaluate against a consistent snapshot of the store."""
        scored: list[tuple[int, IndexEntry]] = []
        for entry in store.snapshot_matching():
            score = self.score(entry)
            if score is not None:
                scored.append((score, entry))

        if self.terms:
            scored.sort(key=lambda item: (-item[0], item[1].path))
        else:
            scored.sort(key=lambda item: item[1].path)

        results = [entry for _, entry in scored]
        if self.limit is not None:
            results = results[: self.limit]
        return results
