"""
Proof requirements and proof payload validation.

Requirements (stored on the group):
    {"photo": {"enabled": true, "count": 2, "requirements": "..."},
     "gps": {"enabled": true, "accuracy": "..."},
     "description": {"enabled": true, "minChars": 20, "prompt": "..."}}

Payload (submitted against a slot):
    {"photos": [{"url": "...", "hash": "..."}],
     "gps": {"latitude": 31.2, "longitude": 121.5},
     "description": "..."}

Attachments are referenced by URL and content hash only; file bytes never
reach the engine.
"""
from numbers import Real
from typing import Any, Dict, List, Optional

from .errors import ProofValidationFailed, ValidationError

RULES = ('photo', 'gps', 'description')


def _optional_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        raise ValidationError(f"proofConfig.{name} must be a non-negative integer", field=f"proofConfig.{name}")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"proofConfig.{name} must be a non-negative integer", field=f"proofConfig.{name}")
    if number < 0:
        raise ValidationError(f"proofConfig.{name} must be a non-negative integer", field=f"proofConfig.{name}")
    return number


def normalize_requirements(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Validate and normalize a group's proof requirements at creation time.

    Unknown rule names are rejected. `minWords` is accepted as an alias of
    `minChars`; the limit is always a character count.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError("proofConfig must be an object", field='proofConfig')

    unknown = set(raw) - set(RULES)
    if unknown:
        raise ValidationError(f"Unknown proof rules: {sorted(unknown)}", field='proofConfig')

    normalized = {}
    for name in RULES:
        rule = raw.get(name)
        if rule is None:
            continue
        if not isinstance(rule, dict):
            raise ValidationError(f"proofConfig.{name} must be an object", field=f"proofConfig.{name}")

        entry = {'enabled': bool(rule.get('enabled', False))}
        if name == 'photo':
            entry['count'] = _optional_int(rule.get('count'), 'photo.count')
            entry['requirements'] = rule.get('requirements')
        elif name == 'gps':
            entry['accuracy'] = rule.get('accuracy')
        else:
            min_chars = rule.get('minChars', rule.get('minWords'))
            entry['minChars'] = _optional_int(min_chars, 'description.minChars') or 0
            entry['prompt'] = rule.get('prompt')
        normalized[name] = {k: v for k, v in entry.items() if v is not None}
    return normalized


def _enabled(requirements: Dict[str, Any], name: str) -> bool:
    return bool((requirements.get(name) or {}).get('enabled'))


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _validate_photos(rule: Dict[str, Any], photos: Any) -> List[Dict[str, Any]]:
    if not isinstance(photos, list) or not photos:
        raise ProofValidationFailed("At least one photo is required", field='photos')

    normalized = []
    for photo in photos:
        url = photo.get('url') if isinstance(photo, dict) else photo
        if not isinstance(url, str) or not url.strip():
            raise ProofValidationFailed("Every photo must reference an uploaded file URL", field='photos')
        entry = {'url': url.strip()}
        if isinstance(photo, dict) and photo.get('hash'):
            entry['hash'] = str(photo['hash'])
        normalized.append(entry)

    required = rule.get('count')
    if required and len(normalized) < required:
        raise ProofValidationFailed(f"At least {required} photos are required", field='photos')
    return normalized


def _validate_gps(gps: Any) -> Dict[str, Any]:
    if not isinstance(gps, dict):
        raise ProofValidationFailed("GPS location is required", field='gps')

    latitude, longitude = gps.get('latitude'), gps.get('longitude')
    if not _is_number(latitude) or not -90 <= latitude <= 90:
        raise ProofValidationFailed("GPS latitude must be a number between -90 and 90", field='gps.latitude')
    if not _is_number(longitude) or not -180 <= longitude <= 180:
        raise ProofValidationFailed("GPS longitude must be a number between -180 and 180", field='gps.longitude')

    normalized = {'latitude': latitude, 'longitude': longitude}
    if _is_number(gps.get('accuracy')):
        normalized['accuracy'] = gps['accuracy']
    return normalized


def validate_proof(requirements: Dict[str, Any], proof: Any) -> Dict[str, Any]:
    """
    Check a proof payload against the group's requirements.

    Returns:
        The normalized proof dict to be stored on the slot

    Raises:
        ProofValidationFailed: naming the first missing or invalid field
    """
    if not isinstance(proof, dict):
        raise ProofValidationFailed("Proof must be an object", field='proof')

    normalized = {}

    if _enabled(requirements, 'photo'):
        normalized['photos'] = _validate_photos(requirements['photo'], proof.get('photos'))
    elif proof.get('photos'):
        normalized['photos'] = _validate_photos({}, proof['photos'])

    if _enabled(requirements, 'gps'):
        normalized['gps'] = _validate_gps(proof.get('gps'))
    elif proof.get('gps') is not None:
        normalized['gps'] = _validate_gps(proof['gps'])

    description = proof.get('description')
    if description is not None and not isinstance(description, str):
        raise ProofValidationFailed("Description must be text", field='description')
    text = (description or '').strip()

    if _enabled(requirements, 'description'):
        min_chars = requirements['description'].get('minChars', 0)
        # Character count, not words: works for scripts without spaces
        if not text or len(text) < min_chars:
            raise ProofValidationFailed(
                f"Description must be at least {min_chars} characters" if min_chars else "Description is required",
                field='description'
            )
    if text:
        normalized['description'] = text

    if not normalized:
        raise ProofValidationFailed("Proof is empty", field='proof')
    return normalized
