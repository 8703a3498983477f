"""Citation export helpers."""

from __future__ import annotations

import json
from typing import Iterable

from pubimport.models import UNKNOWN_AUTHOR, UNKNOWN_JOURNAL, UNKNOWN_TITLE, Publication
from pubimport.utils import slugify

BIBTEX_TYPES = {"article": "article", "book": "book", "chapter": "incollection", "conference": "inproceedings"}
CSL_TYPES = {"article": "article-journal", "book": "book", "chapter": "chapter", "conference": "paper-conference"}


def export_bibtex(publications: Iterable[Publication]) -> str:
    entries = [publication_to_bibtex(pub) for pub in publications]
    return "\n\n".join(entries)


def publication_to_bibtex(publication: Publication) -> str:
    authors = _known_authors(publication)
    year = publication.year if isinstance(publication.year, int) else ""
    fields = {
        "title": publication.title if publication.title != UNKNOWN_TITLE else "",
        "author": " and ".join(authors),
        "journal": publication.journal if publication.journal != UNKNOWN_JOURNAL else "",
        "year": year,
        "volume": publication.volume,
        "number": publication.issue,
        "pages": publication.pages,
        "doi": publication.doi,
        "pmid": publication.pubmed_id,
        "url": publication.url,
    }
    body = ",\n".join(f"  {field} = {{{value}}}" for field, value in fields.items() if value)
    entry_type = BIBTEX_TYPES.get(publication.type, "misc")
    return f"@{entry_type}{{{citation_key(publication)},\n{body}\n}}"


def citation_key(publication: Publication) -> str:
    """`family` + `year` + first title word, e.g. `smith2023diabetes`."""
    authors = _known_authors(publication)
    family = _split_name(authors[0])[0] if authors else ""
    first_word = next(iter(publication.title.split()), "") if publication.title != UNKNOWN_TITLE else ""
    year = publication.year if isinstance(publication.year, int) else ""
    key = slugify(f"{family}{year}{first_word}").replace("-", "")
    return key if key != "item" else slugify(publication.doi or publication.id).replace("-", "")


def export_csl_json(publications: Iterable[Publication]) -> str:
    payload = [publication_to_csl(pub) for pub in publications]
    return json.dumps(payload, indent=2)


def publication_to_csl(publication: Publication) -> dict:
    authors = []
    for name in _known_authors(publication):
        family, given = _split_name(name)
        authors.append({"family": family, "given": given} if given else {"literal": family})
    item = {
        "id": publication.doi or publication.id,
        "type": CSL_TYPES.get(publication.type, "article"),
        "title": publication.title,
        "author": authors,
        "container-title": publication.journal if publication.journal != UNKNOWN_JOURNAL else None,
        "issued": {"date-parts": [[publication.year]]} if isinstance(publication.year, int) else None,
        "DOI": publication.doi or None,
        "PMID": publication.pubmed_id or None,
        "volume": publication.volume or None,
        "issue": publication.issue or None,
        "page": publication.pages or None,
        "URL": publication.url or None,
        "abstract": publication.abstract or None,
    }
    return {key: value for key, value in item.items() if value is not None}


def _known_authors(publication: Publication) -> list[str]:
    return [name for name in publication.authors if name and name != UNKNOWN_AUTHOR]


def _split_name(name: str) -> tuple[str, str]:
    # PubMed names read "Family Initials"; the last token is the given part.
    family, _, given = name.strip().rpartition(" ")
    if not family:
        return given, ""
    return family, given.strip()
