"""Answer and form definition validation

Form definitions are simple questionnaires: an ``id``, a ``title`` and a
list of items, each addressed by ``linkId``.  Submitted answers are a
mapping of ``linkId`` to value, validated against a JSON Schema derived
from the form definition.
"""
import json
import re

from flask import current_app
import jsonschema
from jsonschema.exceptions import best_match
from werkzeug.exceptions import BadRequest

ITEM_TYPES = ('text', 'dropdown', 'checkboxes', 'scale')
SELECTABLE_TYPES = ('dropdown', 'checkboxes')

FORM_DEFINITION_SCHEMA = {
    '$schema': 'http://json-schema.org/draft-07/schema#',
    'type': 'object',
    'required': ['id', 'title', 'items'],
    'properties': {
        'id': {'type': 'string', 'minLength': 1},
        'title': {'type': 'string', 'minLength': 1},
        'items': {
            'type': 'array',
            'minItems': 1,
            'items': {'$ref': '#/definitions/item'}},
    },
    'definitions': {
        'item': {
            'type': 'object',
            'required': ['linkId', 'text', 'type'],
            'properties': {
                'linkId': {'type': 'string', 'minLength': 1},
                'text': {'type': 'string', 'minLength': 1},
                'type': {'enum': list(ITEM_TYPES)},
                'required': {'type': 'boolean'},
                'options': {'type': 'array', 'items': {'type': 'string'}},
                'scale': {
                    'type': 'object',
                    'required': ['min', 'max'],
                    'properties': {
                        'min': {'type': 'integer'},
                        'max': {'type': 'integer'},
                        'step': {'type': 'integer', 'minimum': 1}}},
            },
            'allOf': [
                {
                    'if': {'properties': {
                        'type': {'enum': list(SELECTABLE_TYPES)}}},
                    'then': {
                        'required': ['options'],
                        'properties': {'options': {'minItems': 1}}}},
                {
                    'if': {'properties': {'type': {'const': 'scale'}}},
                    'then': {'required': ['scale']}},
            ],
        },
    },
}

# Keys and value patterns suggesting a direct identifier in free text
DENYLIST_KEYS = ('name', 'email', 'phone', 'address')
PII_PATTERNS = (
    re.compile(r'\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b', re.IGNORECASE),
    re.compile(r'\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b'),
    re.compile(r'\b\d{2,3}[-.\s]?\d{2,3}[-.\s]?\d{2,3}[-.\s]?\d{2,4}\b'),
    re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),
)


class ValidationFailed(BadRequest):
    """Raised when a form definition or answer payload is rejected

    Renders as a 400; ``reference`` names the offending location
    (``linkId`` or path within the definition) when known.
    """

    def __init__(self, description, reference=None):
        super(ValidationFailed, self).__init__(description=description)
        self.reference = reference


def _path(error):
    return '/'.join(str(p) for p in error.absolute_path)


def validate_form_definition(definition):
    """Validate a questionnaire definition prior to publishing

    :raises ValidationFailed: on any structural or semantic problem
    """
    error = best_match(
        jsonschema.Draft7Validator(FORM_DEFINITION_SCHEMA).iter_errors(
            definition))
    if error is not None:
        raise ValidationFailed(error.message, reference=_path(error))

    seen = set()
    for index, item in enumerate(definition['items']):
        if item['linkId'] in seen:
            raise ValidationFailed(
                "Duplicate linkId {}".format(item['linkId']),
                reference='items/{}/linkId'.format(index))
        seen.add(item['linkId'])
        scale = item.get('scale')
        if item['type'] == 'scale' and scale['min'] >= scale['max']:
            raise ValidationFailed(
                "Scale max must be greater than min",
                reference='items/{}/scale'.format(index))


def item_schema(item):
    """JSON Schema for the answer to a single questionnaire item"""
    options = item.get('options')
    if item.get('type') == 'text':
        return {'type': 'string'}
    if item.get('type') == 'dropdown':
        return {'type': 'string', 'enum': options or []}
    if item.get('type') == 'checkboxes':
        entry = {'type': 'string'}
        if options:
            entry['enum'] = options
        return {'type': 'array', 'items': entry}
    if item.get('type') == 'scale':
        schema = {'type': 'number'}
        scale = item.get('scale')
        if scale:
            schema.update({'minimum': scale['min'], 'maximum': scale['max']})
        return schema
    # Unsupported item type; no answer can satisfy it
    return False


def answers_schema(definition):
    """Generate the JSON Schema answers to the given form must satisfy"""
    items = definition.get('items', [])
    return {
        '$schema': 'http://json-schema.org/draft-07/schema#',
        'type': 'object',
        'properties': {i['linkId']: item_schema(i) for i in items},
        'required': [i['linkId'] for i in items if i.get('required')],
        'additionalProperties': False,
    }


def contains_identifier(value):
    if value is None or isinstance(value, (bool, int, float)):
        return False
    text = value if isinstance(value, str) else json.dumps(value)
    return any(pattern.search(text) for pattern in PII_PATTERNS)


def screen_for_identifiers(answers):
    """Reject answers carrying likely identifiers

    :raises ValidationFailed: naming the offending linkId
    """
    for link_id, value in answers.items():
        lowered = link_id.lower()
        if any(denied in lowered for denied in DENYLIST_KEYS):
            raise ValidationFailed(
                "Field {} not permitted".format(link_id), reference=link_id)
        values = value if isinstance(value, list) else [value]
        if any(contains_identifier(v) for v in values):
            raise ValidationFailed(
                "Potential identifier detected in answers",
                reference=link_id)


def validate_answers(answers, definition):
    """Validate an answer payload against the form definition

    :param answers: dict of linkId -> value
    :param definition: the form's questionnaire definition
    :raises ValidationFailed: if the payload is rejected

    """
    if not isinstance(answers, dict):
        raise ValidationFailed("answers must be an object")

    if current_app.config.get('ANSWER_PII_SCREENING'):
        screen_for_identifiers(answers)

    validator = jsonschema.Draft7Validator(answers_schema(definition))
    error = best_match(validator.iter_errors(answers))
    if error is not None:
        current_app.logger.warning(
            "Failed answer schema validation, %s", error.message)
        raise ValidationFailed(
            error.message, reference=_path(error) or None)
