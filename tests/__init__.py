""" Unit tests for package

to run:
    py.test

options:
    py.test --help

"""

TEST_ORG_NAME = 'Test Clinic'

QUESTIONNAIRE = {
    'id': 'weekly-check-in',
    'title': 'Weekly check-in',
    'items': [
        {
            'linkId': 'q1',
            'text': 'Are you feeling well?',
            'type': 'dropdown',
            'options': ['yes', 'no'],
            'required': True,
        },
        {
            'linkId': 'q2',
            'text': 'Anything else to report?',
            'type': 'text',
        },
        {
            'linkId': 'q3',
            'text': 'Rate your pain',
            'type': 'scale',
            'scale': {'min': 0, 'max': 10},
        },
        {
            'linkId': 'q4',
            'text': 'Symptoms this week',
            'type': 'checkboxes',
            'options': ['cough', 'fever', 'fatigue'],
        },
    ],
}
