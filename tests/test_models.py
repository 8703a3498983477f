from pubimport.models import LibrarySnapshot, Publication, SearchCriteria


def test_publication_defaults_use_sentinels() -> None:
    pub = Publication(id="x")
    assert pub.title == "Unknown Title"
    assert pub.authors == ["Unknown Author"]
    assert pub.year == "Unknown Year"
    assert pub.journal == "Unknown Journal"
    assert pub.type == "article"


def test_publication_wire_format_is_camel_case() -> None:
    pub = Publication(id="x", pubmed_id="123", source="PubMed")
    wire = pub.to_wire()
    assert wire["pubmedId"] == "123"
    assert "pubmed_id" not in wire
    assert Publication.model_validate(wire).pubmed_id == "123"


def test_author_line_truncates_long_lists() -> None:
    pub = Publication(id="x", authors=["A", "B", "C", "D"])
    assert pub.author_line == "A, B, C et al."


def test_search_criteria_is_empty_ignores_whitespace() -> None:
    assert SearchCriteria(keywords="  ").is_empty()
    assert not SearchCriteria(author="Smith").is_empty()


def test_snapshot_reads_camel_case_payload() -> None:
    snapshot = LibrarySnapshot.model_validate(
        {
            "folders": [{"id": "f1", "name": "Reading", "parent": None, "expanded": True}],
            "folderPublications": {"f1": ["p1"]},
        }
    )
    assert snapshot.folders[0].expanded is True
    assert snapshot.folder_publications == {"f1": ["p1"]}
