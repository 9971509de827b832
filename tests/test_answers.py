"""Unit test module for answer and form definition validation"""
from copy import deepcopy

import pytest

from research_portal.models.answers import (
    ValidationFailed,
    answers_schema,
    screen_for_identifiers,
    validate_answers,
    validate_form_definition,
)
from tests import QUESTIONNAIRE


def test_valid_answers():
    validate_answers(
        {'q1': 'yes', 'q2': 'better than last week', 'q3': 4,
         'q4': ['cough', 'fatigue']},
        QUESTIONNAIRE)


def test_optional_items_may_be_omitted():
    validate_answers({'q1': 'no'}, QUESTIONNAIRE)


def test_required_item_missing():
    with pytest.raises(ValidationFailed):
        validate_answers({'q2': 'fine'}, QUESTIONNAIRE)


def test_unknown_link_id():
    with pytest.raises(ValidationFailed):
        validate_answers({'q1': 'yes', 'q99': 'extra'}, QUESTIONNAIRE)


@pytest.mark.parametrize('answers, reference', [
    ({'q1': 'maybe'}, 'q1'),
    ({'q1': 'yes', 'q2': 12}, 'q2'),
    ({'q1': 'yes', 'q3': 11}, 'q3'),
    ({'q1': 'yes', 'q3': 'four'}, 'q3'),
    ({'q1': 'yes', 'q4': 'cough'}, 'q4'),
    ({'q1': 'yes', 'q4': ['sneezing']}, 'q4/0'),
])
def test_item_type_mismatch(answers, reference):
    with pytest.raises(ValidationFailed) as excinfo:
        validate_answers(answers, QUESTIONNAIRE)
    assert excinfo.value.reference == reference
    assert excinfo.value.code == 400


def test_answers_must_be_object():
    with pytest.raises(ValidationFailed):
        validate_answers(['yes'], QUESTIONNAIRE)


def test_answers_schema():
    schema = answers_schema(QUESTIONNAIRE)
    assert schema['required'] == ['q1']
    assert schema['additionalProperties'] is False
    assert schema['properties']['q3'] == {
        'type': 'number', 'minimum': 0, 'maximum': 10}


@pytest.mark.parametrize('answers, reference', [
    ({'q2': 'reach me at jane@example.com'}, 'q2'),
    ({'q2': 'call 206-555-0100 anytime'}, 'q2'),
    ({'q2': 'ssn 123-45-6789'}, 'q2'),
    ({'patient_name': 'Jane'}, 'patient_name'),
])
def test_identifier_screening(answers, reference):
    with pytest.raises(ValidationFailed) as excinfo:
        screen_for_identifiers(answers)
    assert excinfo.value.reference == reference


def test_identifier_screening_passes_clean_answers():
    screen_for_identifiers({'q1': 'yes', 'q3': 7, 'q4': ['cough']})


def test_identifier_screening_applied_by_config(app, monkeypatch):
    answers = {'q1': 'yes', 'q2': 'call 206-555-0100 anytime'}
    with pytest.raises(ValidationFailed):
        validate_answers(answers, QUESTIONNAIRE)

    monkeypatch.setitem(app.config, 'ANSWER_PII_SCREENING', False)
    validate_answers(answers, QUESTIONNAIRE)


def test_valid_form_definition():
    validate_form_definition(QUESTIONNAIRE)


def test_definition_requires_items():
    definition = deepcopy(QUESTIONNAIRE)
    definition['items'] = []
    with pytest.raises(ValidationFailed):
        validate_form_definition(definition)


def test_definition_missing_title():
    definition = deepcopy(QUESTIONNAIRE)
    del definition['title']
    with pytest.raises(ValidationFailed):
        validate_form_definition(definition)


def test_definition_selectable_requires_options():
    definition = deepcopy(QUESTIONNAIRE)
    del definition['items'][0]['options']
    with pytest.raises(ValidationFailed) as excinfo:
        validate_form_definition(definition)
    assert excinfo.value.reference == 'items/0'


def test_definition_unknown_item_type():
    definition = deepcopy(QUESTIONNAIRE)
    definition['items'][1]['type'] = 'signature'
    with pytest.raises(ValidationFailed):
        validate_form_definition(definition)


def test_definition_duplicate_link_id():
    definition = deepcopy(QUESTIONNAIRE)
    definition['items'][1]['linkId'] = 'q1'
    with pytest.raises(ValidationFailed) as excinfo:
        validate_form_definition(definition)
    assert excinfo.value.reference == 'items/1/linkId'


def test_definition_scale_bounds():
    definition = deepcopy(QUESTIONNAIRE)
    definition['items'][2]['scale'] = {'min': 5, 'max': 5}
    with pytest.raises(ValidationFailed) as excinfo:
        validate_form_definition(definition)
    assert excinfo.value.reference == 'items/2/scale'
