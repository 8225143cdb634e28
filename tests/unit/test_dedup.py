"""
Unit tests for the deduplication guard and catalog term persistence.
"""

import pytest

from wordbank.generation import CatalogStore, DeduplicationGuard, GeneratedTerm, Provenance, normalize_term


def candidate(subject, text, confidence=0.9):
    return GeneratedTerm(
        subject_id=subject.id,
        term=text,
        definition=f"Definition of {text}.",
        provenance=Provenance.WIKIPEDIA,
        confidence=confidence,
    )


@pytest.fixture
def catalog(db_session):
    return CatalogStore(db_session)


class TestNormalize:
    def test_casefold_and_whitespace(self):
        assert normalize_term("  Depth   of\tField ") == "depth of field"

    def test_casefold_handles_non_ascii(self):
        assert normalize_term("STRASSE") == normalize_term("straße")


class TestDeduplicationGuard:
    def test_case_insensitive_duplicate_in_same_subject(self, catalog, make_subject, make_term):
        biology = make_subject("Biology")
        existing = make_term(biology, "Photosynthesis")

        guard = DeduplicationGuard(catalog, biology.id)
        kept = guard.screen([candidate(biology, "photosynthesis")])

        assert kept == []
        assert guard.duplicates_removed == 1
        assert guard.recycled_term_ids == [existing.id]

    def test_same_text_in_other_subject_is_kept(self, catalog, make_subject, make_term):
        biology = make_subject("Biology")
        botany = make_subject("Botany")
        make_term(biology, "Photosynthesis")

        guard = DeduplicationGuard(catalog, botany.id)
        kept = guard.screen([candidate(botany, "photosynthesis")])

        assert [c.term for c in kept] == ["photosynthesis"]
        assert guard.duplicates_removed == 0

    def test_duplicates_within_batch(self, catalog, make_subject):
        photo = make_subject("Photography")
        guard = DeduplicationGuard(catalog, photo.id)

        kept = guard.screen([candidate(photo, "Aperture"), candidate(photo, "APERTURE ")])
        kept += guard.screen([candidate(photo, "aperture")])

        assert [c.term for c in kept] == ["Aperture"]
        assert guard.duplicates_removed == 2
        assert guard.recycled_term_ids == []

    def test_low_confidence_counted_separately(self, catalog, make_subject):
        photo = make_subject("Photography")
        guard = DeduplicationGuard(catalog, photo.id, min_confidence=0.5)

        kept = guard.screen([candidate(photo, "Bokeh", confidence=0.3), candidate(photo, "ISO")])

        assert [c.term for c in kept] == ["ISO"]
        assert guard.low_confidence_dropped == 1
        assert guard.duplicates_removed == 0

    def test_low_confidence_does_not_block_later_candidate(self, catalog, make_subject):
        photo = make_subject("Photography")
        guard = DeduplicationGuard(catalog, photo.id, min_confidence=0.5)

        kept = guard.screen([candidate(photo, "Bokeh", confidence=0.0), candidate(photo, "bokeh", confidence=0.9)])

        assert [c.term for c in kept] == ["bokeh"]
        assert guard.low_confidence_dropped == 1
        assert guard.duplicates_removed == 0
        assert guard.seen_terms() == ["bokeh"]

    def test_survivors_accumulate(self, catalog, make_subject):
        photo = make_subject("Photography")
        guard = DeduplicationGuard(catalog, photo.id)
        guard.screen([candidate(photo, "ISO")])
        guard.screen([candidate(photo, "Shutter speed")])
        assert [c.term for c in guard.survivors] == ["ISO", "Shutter speed"]
        assert guard.seen_terms() == ["iso", "shutter speed"]


class TestCatalogStore:
    def test_persist_and_find(self, catalog, make_subject):
        photo = make_subject("Photography")
        term = candidate(photo, "Aperture")

        term_id = catalog.persist_term(term)

        assert term_id is not None
        assert term.term_id == term_id
        assert catalog.find_existing(photo.id, "aperture") == term_id

    def test_persist_conflict_returns_none(self, catalog, make_subject, make_term):
        photo = make_subject("Photography")
        make_term(photo, "Aperture")

        assert catalog.persist_term(candidate(photo, "aperture")) is None
        assert catalog.count_terms(photo.id) == 1

    def test_get_or_create_subject_is_case_insensitive(self, catalog):
        first = catalog.get_or_create_subject("Photography")
        second = catalog.get_or_create_subject("photography")
        assert first.id == second.id
        assert len(catalog.list_subjects()) == 1
