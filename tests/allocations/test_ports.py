"""Tests for port list normalization."""

from panel.allocations import normalize_ports


class TestNormalizePorts:
    def test_duplicates_removed_and_flagged(self):
        result = normalize_ports(["80", "80", "443"])
        assert result.ports == [80, 443]
        assert result.modified is True

    def test_range_expanded_and_flagged(self):
        result = normalize_ports(["100-102"])
        assert result.ports == [100, 101, 102]
        assert result.modified is True

    def test_range_clamped_to_valid_ports(self):
        result = normalize_ports(["-5-70000"])
        assert result.ports[0] == 0
        assert result.ports[-1] == 65535
        assert len(result.ports) == 65536
        assert result.modified is True

    def test_non_numeric_token_dropped(self):
        result = normalize_ports(["abc"])
        assert result.ports == []
        assert result.modified is True

    def test_out_of_range_literal_dropped(self):
        result = normalize_ports(["25565", "70000"])
        assert result.ports == [25565]
        assert result.modified is True

    def test_malformed_range_dropped(self):
        result = normalize_ports(["10-", "1-2-3", "25565"])
        assert result.ports == [25565]
        assert result.modified is True

    def test_reversed_range_is_empty(self):
        result = normalize_ports(["200-100"])
        assert result.ports == []
        assert result.modified is True

    def test_unsorted_input_flagged(self):
        result = normalize_ports(["443", "80"])
        assert result.ports == [80, 443]
        assert result.modified is True

    def test_clean_input_not_modified(self):
        result = normalize_ports(["22", "80", "443"])
        assert result.ports == [22, 80, 443]
        assert result.modified is False

    def test_whitespace_is_ignored(self):
        result = normalize_ports([" 80 ", "443"])
        assert result.ports == [80, 443]
        assert result.modified is False

    def test_normalizing_twice_is_stable(self):
        first = normalize_ports(["27017-27019", "27015", "27015", "abc"])
        second = normalize_ports(first.tokens())

        assert first.modified is True
        assert second.ports == first.ports == [27015, 27017, 27018, 27019]
        assert second.modified is False

    def test_empty_input(self):
        result = normalize_ports([])
        assert result.ports == []
        assert result.modified is False
