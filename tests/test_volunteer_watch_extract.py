# tests/test_volunteer_watch_extract.py
from modules.volunteer_watch.lib.extract import extract_counts, pick_number
from modules.volunteer_watch.lib.models import DetailCounts


def test_definition_list_pair():
    counts = extract_counts("<dl><dt>모집인원</dt><dd>25명</dd></dl>")
    assert counts.recruit == "25"
    assert counts.applied == ""


def test_definition_list_with_spacing_and_colon():
    html = "<dl><dt> 모집 인원 : </dt><dd> 총 <b>8</b> 명 </dd><dt>신청인원</dt><dd>3명</dd></dl>"
    assert extract_counts(html) == DetailCounts(recruit="8", applied="3")


def test_table_header_cell_pair_with_thousands_separator():
    html = "<table><tr><th>신청인원</th><td>1,234 명</td></tr><tr><th>모집인원(명)</th><td>2,000명</td></tr></table>"
    counts = extract_counts(html)
    assert counts.applied == "1234"
    assert counts.recruit == "2000"


def test_text_window_fallback():
    html = "<div class='board'><p>모집 인원은 총 12명 입니다.</p></div>"
    assert extract_counts(html).recruit == "12"


def test_structured_match_beats_free_text():
    html = "<p>지난 회차 모집인원 99명</p><dl><dt>모집인원</dt><dd>10명</dd></dl>"
    assert extract_counts(html).recruit == "10"


def test_applied_of_recruit_slash_pattern_when_label_search_fails():
    html = "<div>현황: 신청 3명 / 20명</div>"
    counts = extract_counts(html)
    assert counts.applied == "3"
    assert counts.recruit == ""


def test_no_labels_anywhere_yields_empty_strings():
    html = "<html><body><h1>봉사활동 안내</h1><p>문의 02-123-4567</p></body></html>"
    assert extract_counts(html) == DetailCounts()


def test_empty_and_garbage_input_never_raises():
    assert extract_counts("") == DetailCounts()
    assert extract_counts(None) == DetailCounts()
    assert extract_counts("<dt>모집인원<dd>") == DetailCounts()


def test_pick_number():
    assert pick_number("약 1,500명 모집") == "1500"
    assert pick_number("0 명") == "0"
    assert pick_number("인원 미정") == ""
    assert pick_number("") == ""
