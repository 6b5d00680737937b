"""
Centralized German validation messages and field labels.

Every message shown to a user, whether it comes from the schema validator,
a custom rule or the transport, is built from the templates in this module
so the wording stays consistent across forms.
"""

import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

# Field labels shared by the portal forms; form definitions may add their own.
FIELD_LABELS: Dict[str, str] = {
    # Group forms
    'name': 'Gruppenname',
    'description': 'Beschreibung',
    'responsiblePersons': 'Verantwortliche Personen',
    'logo': 'Logo',
    'firstName': 'Vorname',
    'lastName': 'Nachname',
    'email': 'E-Mail-Adresse',

    # Appointment forms
    'title': 'Titel',
    'teaser': 'Kurzbeschreibung',
    'mainText': 'Beschreibung',
    'startDateTime': 'Startdatum',
    'endDateTime': 'Enddatum',
    'street': 'Straße',
    'city': 'Ort',
    'state': 'Bundesland',
    'postalCode': 'Postleitzahl',
    'recurringText': 'Wiederholungsbeschreibung',
    'coverImage': 'Cover-Bild',

    # Status reports
    'groupId': 'Gruppe',
    'content': 'Inhalt',
    'reporterFirstName': 'Vorname des Erstellers',
    'reporterLastName': 'Nachname des Erstellers',

    # Funding requests
    'summary': 'Zusammenfassung',
    'purposes': 'Verwendungszweck',

    # Common
    'files': 'Datei-Anhänge',
    '__form__': 'Formular',
}

SUMMARY_TITLE = 'Bitte überprüfen Sie Ihre Eingaben'
DEFAULT_ERROR_TITLE = 'Fehler beim Absenden des Formulars'
GENERIC_ERROR = 'Ein Fehler ist aufgetreten.'
SERVER_ERROR = 'Ein Serverfehler ist aufgetreten. Bitte versuchen Sie es später erneut.'
NOT_FOUND_ERROR = 'Der angeforderte Endpunkt wurde nicht gefunden.'
BAD_REQUEST_ERROR = 'Ihre Anfrage konnte nicht verarbeitet werden. Bitte überprüfen Sie Ihre Eingaben.'
PAYLOAD_TOO_LARGE_ERROR = (
    'Die hochgeladenen Dateien sind zu groß. Bitte reduzieren Sie die Dateigröße '
    'oder Anzahl der Anhänge und versuchen Sie es erneut.'
)
NETWORK_ERROR = 'Netzwerkfehler. Bitte überprüfen Sie Ihre Internetverbindung.'
TIMEOUT_ERROR = 'Zeitüberschreitung der Anfrage. Bitte versuchen Sie es erneut.'
MALFORMED_RESPONSE_ERROR = 'Die Antwort des Servers konnte nicht verarbeitet werden.'
SUBMISSION_CANCELLED = 'Die Übermittlung wurde abgebrochen. Bitte versuchen Sie es erneut.'
VALIDATION_FAILED = 'Validierung fehlgeschlagen'


def get_field_label(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    """
    Get the display label for a field id.

    Looks up the full path first, then the last non-index segment, in the
    form-specific labels and then in the shared labels.

    Args:
        field: Canonical field id (e.g. 'responsiblePersons.0.firstName')
        labels: Optional form-specific labels

    Returns:
        Display label, or the base segment when no label is known
    """
    base_name = field
    for segment in reversed(field.split('.')):
        if not segment.isdigit():
            base_name = segment
            break

    for source in (labels or {}, FIELD_LABELS):
        if field in source:
            return source[field]
        if base_name in source:
            return source[base_name]

    return base_name


def required(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} ist erforderlich"


def min_length(field: str, minimum: int, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} muss mindestens {minimum} Zeichen lang sein"


def max_length(field: str, maximum: int, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} darf maximal {maximum} Zeichen lang sein"


def between(field: str, minimum: int, maximum: int, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} muss zwischen {minimum} und {maximum} Zeichen lang sein"


def min_value(field: str, minimum: Any, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} muss mindestens {minimum} sein"


def max_value(field: str, maximum: Any, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} darf höchstens {maximum} sein"


def email(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} muss eine gültige E-Mail-Adresse sein"


def at_least_one(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"Mindestens ein Eintrag für {get_field_label(field, labels)} ist erforderlich"


def invalid_format(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} hat ein ungültiges Format"


def invalid_choice(field: str, choices: Any = None, labels: Optional[Mapping[str, str]] = None) -> str:
    label = get_field_label(field, labels)
    if choices:
        choices_str = ', '.join(str(c) for c in choices)
        return f"{label} muss einer der folgenden Werte sein: {choices_str}"
    return f"{label} enthält einen ungültigen Wert"


def invalid_date(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} muss ein gültiges Datum sein"


def too_many_files(maximum: int) -> str:
    return f"Maximal {maximum} Dateien erlaubt"


def too_few_files(field: str, minimum: int, labels: Optional[Mapping[str, str]] = None) -> str:
    label = get_field_label(field, labels)
    if minimum == 1:
        return f"{label}: Mindestens eine Datei ist erforderlich"
    return f"{label}: Mindestens {minimum} Dateien sind erforderlich"


def end_before_start(field: str, labels: Optional[Mapping[str, str]] = None) -> str:
    return f"{get_field_label(field, labels)} darf nicht vor dem Startdatum liegen"


def localize_error(error_type: str, field: str, ctx: Optional[Mapping[str, Any]] = None,
                   raw_message: str = "", labels: Optional[Mapping[str, str]] = None) -> str:
    """
    Map a pydantic error type to a German message.

    Args:
        error_type: pydantic error ``type`` (e.g. 'missing', 'string_too_short')
        field: Canonical field id the error belongs to
        ctx: pydantic error context (limits, expected values)
        raw_message: Original message, used for custom ``value_error`` messages
        labels: Optional form-specific labels

    Returns:
        Localized message
    """
    ctx = ctx or {}

    if error_type == 'missing':
        return required(field, labels)

    if error_type == 'string_too_short':
        minimum = int(ctx.get('min_length', 1))
        if minimum <= 1:
            return required(field, labels)
        return min_length(field, minimum, labels)

    if error_type == 'string_too_long':
        return max_length(field, int(ctx.get('max_length', 0)), labels)

    if error_type == 'too_short':
        minimum = int(ctx.get('min_length', 1))
        if minimum <= 1:
            return at_least_one(field, labels)
        return f"Mindestens {minimum} Einträge für {get_field_label(field, labels)} sind erforderlich"

    if error_type == 'too_long':
        return f"Maximal {ctx.get('max_length')} Einträge für {get_field_label(field, labels)} erlaubt"

    if error_type in ('greater_than_equal', 'greater_than'):
        return min_value(field, ctx.get('ge', ctx.get('gt')), labels)

    if error_type in ('less_than_equal', 'less_than'):
        return max_value(field, ctx.get('le', ctx.get('lt')), labels)

    if error_type in ('literal_error', 'enum'):
        expected = ctx.get('expected')
        return invalid_choice(field, [expected] if expected else None, labels)

    if error_type in ('value_error', 'assertion_error'):
        message = _strip_error_prefix(raw_message)
        return message or invalid_format(field, labels)

    if error_type.startswith('date') or error_type.startswith('datetime'):
        return invalid_date(field, labels)

    if error_type == 'string_pattern_mismatch':
        return invalid_format(field, labels)

    logger.debug(f"No specific message for error type '{error_type}' on field '{field}'")
    return invalid_format(field, labels)


def _strip_error_prefix(message: str) -> str:
    for prefix in ('Value error, ', 'Assertion failed, '):
        if message.startswith(prefix):
            return message[len(prefix):]
    return message
