from attackmap.services.feed_parsers import parse_csv, parse_feed, parse_hash_list, parse_semicolon_list, valid_ipv4

FIREHOL_TEXT = """#
# firehol_level1
#
# Maintainer: FireHOL
0.0.0.0/8
1.10.16.0/20

  5.188.10.180
not-an-ip
999.1.1.1
; 2.2.2.2 is not a comment here
"""

SPAMHAUS_TEXT = """; Spamhaus DROP List 2024/01/01 - (c) 2024 The Spamhaus Project
; Last-Modified: Mon, 01 Jan 2024 00:00:00 GMT

1.10.16.0/20 ; SBL256894
2.56.192.0/22 ; SBL459831
# 3.3.3.3 is not a comment here
"""

CSV_TEXT = """# id,first_seen,malware,dst_ip,dst_port
1,2024-01-01 00:00:00,QakBot,"45.9.148.108",443
2,2024-01-01 00:00:00,Emotet, 103.109.247.10 ,8080

3,2024-01-01 00:00:00,Dridex,unknown,443
4,2024-01-01
"""


def test_valid_ipv4_rejects_out_of_range_octets():
    assert valid_ipv4("192.168.1.10") == "192.168.1.10"
    assert valid_ipv4("256.1.1.1") is None
    assert valid_ipv4("1.2.3") is None


def test_hash_list_skips_comments_and_blank_lines(firehol_feed):
    entries = parse_hash_list(FIREHOL_TEXT, firehol_feed)

    assert [e.ip for e in entries] == ["0.0.0.0", "1.10.16.0", "5.188.10.180"]
    assert all(e.source == "FireHOL-L1" for e in entries)
    assert all(e.reason == "botnet/malware/scanner" for e in entries)


def test_semicolon_list_uses_semicolon_comments(spamhaus_feed):
    entries = parse_semicolon_list(SPAMHAUS_TEXT, spamhaus_feed)

    assert [e.ip for e in entries] == ["1.10.16.0", "2.56.192.0"]
    assert entries[0].source == "Spamhaus-DROP"
    assert entries[0].reason == "spam/malicious hosting"


def test_csv_reads_ip_from_fixed_column(sslbl_feed):
    entries = parse_csv(CSV_TEXT, sslbl_feed)

    assert [e.ip for e in entries] == ["45.9.148.108", "103.109.247.10"]
    assert all(e.source == "Abuse.ch-SSLBL" for e in entries)


def test_parse_feed_dispatches_on_format(firehol_feed, spamhaus_feed):
    assert parse_feed(SPAMHAUS_TEXT, spamhaus_feed) == parse_semicolon_list(SPAMHAUS_TEXT, spamhaus_feed)
    assert parse_feed(FIREHOL_TEXT, firehol_feed) == parse_hash_list(FIREHOL_TEXT, firehol_feed)


def test_chunked_input_parses_the_same(firehol_feed):
    lines = FIREHOL_TEXT.splitlines(keepends=True)
    half = len(lines) // 2
    chunked = parse_hash_list("".join(lines[:half]), firehol_feed) + parse_hash_list("".join(lines[half:]), firehol_feed)

    assert chunked == parse_hash_list(FIREHOL_TEXT, firehol_feed)


def test_empty_input_gives_no_entries(firehol_feed, sslbl_feed):
    assert parse_hash_list("", firehol_feed) == []
    assert parse_csv("\n\n", sslbl_feed) == []
