"""Unit tests for event fingerprints."""
from processor.fingerprint import generate_fingerprint


class TestGenerateFingerprint:
    """Test cases for generate_fingerprint."""

    def test_consistency(self):
        """Test that identical inputs produce identical fingerprints."""
        fingerprint_1 = generate_fingerprint(
            "Comedy Night", "October 4 @ 6:00 pm", "An evening of laughs", "West Islip Fire Department"
        )
        fingerprint_2 = generate_fingerprint(
            "Comedy Night", "October 4 @ 6:00 pm", "An evening of laughs", "West Islip Fire Department"
        )

        assert fingerprint_1 == fingerprint_2
        assert len(fingerprint_1) == 64  # SHA256 produces 64 character hex string

    def test_surrounding_whitespace_ignored(self):
        """Test that fields are trimmed before hashing."""
        fingerprint_1 = generate_fingerprint("Storytime", "Aug 1", "Songs", "Library")
        fingerprint_2 = generate_fingerprint("  Storytime ", " Aug 1\n", " Songs ", "Library ")

        assert fingerprint_1 == fingerprint_2

    def test_single_field_difference(self):
        """Test that changing any identity field changes the fingerprint."""
        base = generate_fingerprint("Event A", "Aug 1", "Description", "Library")

        assert base != generate_fingerprint("Event B", "Aug 1", "Description", "Library")
        assert base != generate_fingerprint("Event A", "Aug 2", "Description", "Library")
        assert base != generate_fingerprint("Event A", "Aug 1", "Descriptiom", "Library")
        assert base != generate_fingerprint("Event A", "Aug 1", "Description", "Chamber")

    def test_only_description_prefix_counts(self):
        """Test that description text past 50 characters is ignored."""
        prefix = "x" * 50

        fingerprint_1 = generate_fingerprint("Event", "Aug 1", prefix + " first tail", "Library")
        fingerprint_2 = generate_fingerprint("Event", "Aug 1", prefix + " second tail", "Library")

        assert fingerprint_1 == fingerprint_2

    def test_none_fields_treated_as_empty(self):
        """Test that missing fields hash like empty strings."""
        assert generate_fingerprint("Event", None, None, "Library") == \
            generate_fingerprint("Event", "", "", "Library")
