"""Unit tests for public slug generation and validation."""

import pytest

from scheduling.utils.slug import generate_slug_from_name, is_valid_slug


class TestGenerateSlug:
    def test_lowercases_and_hyphenates(self):
        assert generate_slug_from_name("Clinica Centro") == "clinica-centro"

    def test_strips_accents(self):
        assert generate_slug_from_name("Consultório São João") == "consultorio-sao-joao"

    def test_drops_punctuation(self):
        assert generate_slug_from_name("Dr. Silva & Filhos!") == "dr-silva-filhos"

    def test_collapses_repeated_hyphens_and_spaces(self):
        assert generate_slug_from_name("  Agenda -- Principal  ") == "agenda-principal"


class TestIsValidSlug:
    @pytest.mark.parametrize("slug", ["abc", "clinica-centro", "sala-2"])
    def test_valid(self, slug):
        assert is_valid_slug(slug) is True

    @pytest.mark.parametrize("slug", [None, "", "ab", "Clinica", "sala_2", "são-paulo"])
    def test_invalid(self, slug):
        assert is_valid_slug(slug) is False
