"""Tests for reading and filtering address lists."""

import logging

from batch_airdrop.batch import (
    ADDRESS_ZERO,
    parse_addresses,
    read_address_file,
    scan_address_file,
    scan_addresses,
)


A = "0x" + "a" * 40
B = "0x" + "B" * 40
MIXED = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


class TestScanAddresses:
    def test_keeps_only_valid_non_zero_addresses_in_order(self):
        lines = [A, "not-an-address", "0x" + "0" * 40, B]
        assert parse_addresses(lines) == (A, B)

    def test_accepts_mixed_case_hex(self):
        assert parse_addresses([MIXED]) == (MIXED,)

    def test_keeps_duplicates(self):
        assert parse_addresses([A, B, A]) == (A, B, A)

    def test_rejects_wrong_length_and_prefix(self):
        lines = [
            "0x" + "a" * 39,
            "0x" + "a" * 41,
            "a" * 42,
            "0X" + "a" * 40,
            "0x" + "g" * 40,
        ]
        scan = scan_addresses(lines)
        assert scan.recipients == ()
        assert [w.line_number for w in scan.warnings] == [1, 2, 3, 4, 5]

    def test_surrounding_whitespace_is_not_trimmed(self):
        scan = scan_addresses([" " + A, A + " ", A])
        assert scan.recipients == (A,)
        assert len(scan.warnings) == 2

    def test_strips_line_terminators(self):
        assert parse_addresses([A + "\r\n", B + "\n"]) == (A, B)

    def test_counts_blank_and_zero_lines(self):
        scan = scan_addresses(["", A, ADDRESS_ZERO, "", "junk"])
        assert scan.recipients == (A,)
        assert scan.blank_lines == 2
        assert scan.zero_addresses == 1
        assert scan.skipped == 4

    def test_logs_invalid_lines(self, caplog):
        with caplog.at_level(logging.WARNING, logger="batch_airdrop.batch"):
            scan_addresses([A, "not-an-address"])
        assert "Invalid address" in caplog.text
        assert "not-an-address" in caplog.text

    def test_warning_records_line_and_content(self):
        scan = scan_addresses([A, "oops"])
        warning = scan.warnings[0]
        assert warning.line_number == 2
        assert warning.content == "oops"
        assert "Line 2" in str(warning)


class TestAddressFile:
    def test_reads_lf_file(self, address_file):
        path = address_file([A, B])
        assert read_address_file(path) == (A, B)

    def test_reads_crlf_file(self, address_file):
        path = address_file([A, "bad", B, ""], newline="\r\n")
        scan = scan_address_file(path)
        assert scan.recipients == (A, B)
        assert len(scan.warnings) == 1

    def test_ignores_byte_order_mark(self, tmp_path):
        path = tmp_path / "bom.txt"
        path.write_bytes(b"\xef\xbb\xbf" + f"{A}\n{B}\n".encode())
        assert read_address_file(path) == (A, B)

    def test_undecodable_line_is_skipped(self, tmp_path):
        path = tmp_path / "mixed.txt"
        path.write_bytes(A.encode() + b"\n\xff\xfegarbage\n" + B.encode() + b"\n")
        scan = scan_address_file(path)
        assert scan.recipients == (A, B)
        assert len(scan.warnings) == 1
        assert scan.warnings[0].line_number == 2

    def test_empty_file(self, address_file):
        assert read_address_file(address_file([])) == ()
