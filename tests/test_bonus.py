from datetime import datetime

import pytest
from conftest import FIXED_NOW, RELEGATION, TEAMS, bonus_page, bonus_questions_page, bonus_row, bonus_select

from kicktipp_scraper.bonus import extract_open_bonus_questions, extract_placed_bonus_predictions, reconcile_bonus
from kicktipp_scraper.errors import IssueKind
from kicktipp_scraper.fixtures import SITE_TZ
from kicktipp_scraper.models import BonusOption, BonusPrediction

CHAMPION = "bonusForms[1].antwortIds"
RELEGATED = ("bonusForms[2].antwortIds[0]", "bonusForms[2].antwortIds[1]")


# -----------------------------------------------------------------------------
# Open questions
# -----------------------------------------------------------------------------
def test_open_questions_single_and_multi_select(now):
    res = extract_open_bonus_questions(bonus_questions_page(), now)
    assert res.ok and res.issues == []
    champion, relegation = res.value
    assert champion.text == "Who will win the championship?"
    assert champion.form_field_name == CHAMPION
    assert champion.max_selections == 1
    assert champion.options[0] == BonusOption("101", "Team A")
    assert champion.option_ids() == ["101", "102", "103"]
    assert champion.deadline == datetime(2025, 8, 22, 20, 30, tzinfo=SITE_TZ)
    assert relegation.field_names == RELEGATED
    assert relegation.max_selections == 2
    assert len(relegation.options) == 3


def test_locked_questions_are_not_open(now):
    res = extract_open_bonus_questions(bonus_questions_page(), now)
    assert "Top scorer team?" not in [q.text for q in res.value]


def test_missing_bonus_table_is_structure_issue(now):
    res = extract_open_bonus_questions("<html><body><p>No bonus questions</p></body></html>", now)
    assert res.value == []
    assert res.structure_missing


def test_unreadable_deadline_falls_back_to_now(now):
    rows = bonus_row("bald", "Wer wird Meister?", bonus_select("bonusForms[1].antwortIds", TEAMS))
    res = extract_open_bonus_questions(bonus_page(rows), now)
    assert res.value[0].deadline == FIXED_NOW
    assert res.count(IssueKind.FIELD) == 1


def test_question_without_options_is_field_issue(now):
    rows = bonus_row("22.08.25 20:30", "Wer wird Meister?", bonus_select("bonusForms[1].antwortIds", []))
    res = extract_open_bonus_questions(bonus_page(rows), now)
    assert res.value == []
    assert res.count(IssueKind.FIELD) == 1


# -----------------------------------------------------------------------------
# Placed answers
# -----------------------------------------------------------------------------
def test_placed_single_and_multi_select():
    html = bonus_questions_page(champion="102", relegated=("201", "203"))
    placed = extract_placed_bonus_predictions(html).value
    assert placed[CHAMPION] == BonusPrediction(("102",))
    assert placed[RELEGATED[0]].selected_option_ids == ("201", "203")


def test_unanswered_question_is_none_and_locked_is_absent():
    placed = extract_placed_bonus_predictions(bonus_questions_page()).value
    assert placed == {CHAMPION: None, RELEGATED[0]: None}


def test_placed_on_page_without_table_is_empty():
    res = extract_placed_bonus_predictions("<html><body><p>No bonus</p></body></html>")
    assert res.value == {}
    assert res.structure_missing


# -----------------------------------------------------------------------------
# Bonus prediction
# -----------------------------------------------------------------------------
def test_bonus_prediction_normalizes_to_tuple():
    assert BonusPrediction(["101"]) == BonusPrediction(("101",))


@pytest.mark.parametrize("ids", [(), ("",), ("101", "101")])
def test_bonus_prediction_rejects_bad_answers(ids):
    with pytest.raises(ValueError):
        BonusPrediction(ids)


# -----------------------------------------------------------------------------
# Reconcile
# -----------------------------------------------------------------------------
def test_empty_desired_keeps_every_selection():
    html = bonus_questions_page(champion="102", relegated=("201", ""))
    rec = reconcile_bonus(html, {}).value
    assert rec.is_noop
    assert rec.value_of(CHAMPION) == "102"
    assert rec.value_of(RELEGATED[0]) == "201"
    assert rec.value_of(RELEGATED[1]) == ""
    assert rec.value_of("_charset_") == "UTF-8"
    assert rec.value_of("tippsaisonId") == "3684392"
    assert rec.pairs()[-1] == ("submitbutton", "Tipps speichern")


def test_single_select_is_written():
    rec = reconcile_bonus(bonus_questions_page(), {CHAMPION: BonusPrediction(["102"])}).value
    assert (rec.placed, rec.placed_keys) == (1, [CHAMPION])
    assert rec.value_of(CHAMPION) == "102"
    assert rec.action_url == "https://www.kicktipp.de/test-community/tippabgabe?bonus=true"


def test_multi_select_fills_slots_in_order():
    desired = {RELEGATED[0]: BonusPrediction(["203", "201"])}
    rec = reconcile_bonus(bonus_questions_page(), desired).value
    assert rec.value_of(RELEGATED[0]) == "203"
    assert rec.value_of(RELEGATED[1]) == "201"


def test_answered_question_is_skipped_without_override():
    html = bonus_questions_page(champion="101")
    rec = reconcile_bonus(html, {CHAMPION: BonusPrediction(["103"])}).value
    assert (rec.placed, rec.skipped, rec.skipped_keys) == (0, 1, [CHAMPION])
    assert rec.value_of(CHAMPION) == "101"


def test_answered_question_is_replaced_with_override():
    html = bonus_questions_page(champion="101", relegated=("202", "203"))
    rec = reconcile_bonus(html, {CHAMPION: BonusPrediction(["103"])}, override=True).value
    assert rec.placed == 1
    assert rec.value_of(CHAMPION) == "103"
    # unrelated question unchanged
    assert (rec.value_of(RELEGATED[0]), rec.value_of(RELEGATED[1])) == ("202", "203")


def test_unknown_option_is_rejected():
    res = reconcile_bonus(bonus_questions_page(), {CHAMPION: BonusPrediction(["999"])})
    rec = res.value
    assert rec.rejected == [CHAMPION]
    assert rec.placed == 0
    assert rec.value_of(CHAMPION) == ""
    assert res.count(IssueKind.FIELD) == 1


def test_too_many_answers_are_rejected():
    res = reconcile_bonus(bonus_questions_page(), {CHAMPION: BonusPrediction(["101", "102"])})
    assert res.value.rejected == [CHAMPION]


def test_locked_or_unknown_question_is_unmatched():
    desired = {"bonusForms[3].antwortIds": BonusPrediction(["101"])}
    rec = reconcile_bonus(bonus_questions_page(), desired).value
    assert rec.unmatched == ["bonusForms[3].antwortIds"]


def test_every_select_appears_once():
    desired = {CHAMPION: BonusPrediction(["101"]), RELEGATED[0]: BonusPrediction(["201", "202"])}
    rec = reconcile_bonus(bonus_questions_page(), desired).value
    names = [n for n, _ in rec.pairs()]
    assert len(names) == len(set(names))
    assert rec.placed == 2


def test_extra_controls_survive():
    extra = '<input type="number" name="tiebreaker" value="">'
    rec = reconcile_bonus(bonus_questions_page(extra=extra), {CHAMPION: BonusPrediction(["101"])}).value
    assert rec.value_of("tiebreaker") == ""


def test_missing_form_or_table_is_structural():
    res = reconcile_bonus("<html><body><p>No form</p></body></html>", {CHAMPION: BonusPrediction(["101"])})
    assert res.value is None and res.structure_missing
    res = reconcile_bonus("<html><body><form></form></body></html>", {})
    assert res.value is None and res.structure_missing


def test_relegation_fixture_options_match():
    res = extract_open_bonus_questions(bonus_questions_page())
    assert [o.id for o in res.value[1].options] == [v for v, _ in RELEGATION]
