import math
import os
import re
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Tuple

from dotenv import dotenv_values
from jsonschema import validate as jsonschema_validate, ValidationError

from watch_core.errors import ConfigError, PatternError
from watch_core.models import WatchConfig

ENV_PREFIX = 'ECR_WATCH'

# (field, env suffix, fallback env name, type, default, required, description)
CONFIG_FIELDS: List[Tuple[str, str, Optional[str], str, Optional[str], bool, str]] = [
    ('profile', 'AWS_PROFILE', 'AWS_PROFILE', 'String', None, False, 'AWS credentials profile'),
    ('region', 'AWS_REGION', 'AWS_REGION', 'String', 'us-east-1', False, 'AWS region of the registry'),
    ('repository', 'REPOSITORY', None, 'String', None, True, 'ECR repository to watch'),
    ('tag_pattern', 'TAG_PATTERN', 'TAG_PATTERN', 'String', '^latest$', True, 'regular expression matched against image tags'),
    ('interval', 'INTERVAL', None, 'Duration', '30s', True, 'delay between polls, e.g. 30s, 1m30s'),
    ('registry_id', 'REGISTRY_ID', None, 'String', None, False, 'ECR registry (account) id, defaults to the caller'),
]

CONFIG_SCHEMA = {
    'type': 'object',
    'required': ['repository', 'tag_pattern', 'interval', 'region'],
    'properties': {
        'profile': {'type': ['string', 'null']},
        'region': {'type': 'string', 'minLength': 1},
        'repository': {'type': 'string', 'minLength': 1},
        'tag_pattern': {'type': 'string'},
        'interval': {'type': 'number', 'minimum': 0},
        'registry_id': {'type': ['string', 'null']},
    },
}

_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'μs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)')


def load_env_file(environ: Optional[MutableMapping[str, str]] = None) -> Optional[str]:
    """Merge a dotenv file into environ (os.environ by default) without
    overriding variables that are already set.

    Returns the path loaded, or None when there was nothing to load.
    """
    environ = os.environ if environ is None else environ
    env_file = environ.get(f'{ENV_PREFIX}_ENV_FILE', '.env')
    if not env_file or not os.path.isfile(env_file):
        return None
    for key, value in dotenv_values(env_file).items():
        if value is not None and key not in environ:
            environ[key] = value
    return env_file


def parse_duration(value: str) -> float:
    """Parse a duration such as '30s', '1m30s' or '500ms' into seconds.

    A bare number is taken as seconds.
    """
    text = value.strip()
    if not text:
        raise ConfigError("empty duration")
    sign = 1.0
    if text[0] in '+-':
        if text[0] == '-':
            sign = -1.0
        text = text[1:]
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ConfigError(f"invalid duration {value!r}")
        return sign * seconds

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ConfigError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ConfigError(f"invalid duration {value!r}")
    return sign * total


def format_duration(seconds: float) -> str:
    if seconds >= 60 and seconds == int(seconds):
        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)
        out = f"{hours}h" if hours else ''
        if minutes or hours:
            out += f"{minutes}m"
        return out + f"{secs}s"
    return f"{seconds:g}s"


def _lookup(environ: Mapping[str, str], suffix: str, fallback: Optional[str]) -> Optional[str]:
    key = f'{ENV_PREFIX}_{suffix}'
    if key in environ:
        return environ[key]
    if fallback and fallback in environ:
        return environ[fallback]
    return None


def resolve_settings(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect raw settings from the environment, applying defaults."""
    settings: Dict[str, Any] = {}
    for name, suffix, fallback, _type, default, required, _desc in CONFIG_FIELDS:
        value = _lookup(environ, suffix, fallback)
        if value is None:
            value = default
        if value is None and required:
            raise ConfigError(f"required key {ENV_PREFIX}_{suffix} missing value")
        settings[name] = value
    return settings


def load_config(environ: Optional[Mapping[str, str]] = None) -> WatchConfig:
    """Resolve, validate and compile the watcher configuration."""
    environ = os.environ if environ is None else environ
    settings = resolve_settings(environ)

    try:
        settings['interval'] = parse_duration(settings['interval'])
    except ConfigError as e:
        raise ConfigError(f"{ENV_PREFIX}_INTERVAL: {e}") from e

    try:
        jsonschema_validate(settings, CONFIG_SCHEMA)
    except ValidationError as e:
        field_name = '.'.join(str(p) for p in e.path) or 'configuration'
        raise ConfigError(f"invalid {field_name}: {e.message}") from e

    try:
        tag_pattern = re.compile(settings['tag_pattern'])
    except re.error as e:
        raise PatternError(f"invalid tag pattern {settings['tag_pattern']!r}: {e}") from e

    return WatchConfig(
        repository=settings['repository'],
        tag_pattern=tag_pattern,
        interval=settings['interval'],
        region=settings['region'],
        profile=settings['profile'] or None,
        registry_id=settings['registry_id'] or None,
    )


def usage_table() -> str:
    """Describe every configuration variable, for --help."""
    rows = [('KEY', 'TYPE', 'DEFAULT', 'REQUIRED', 'DESCRIPTION')]
    for _name, suffix, fallback, type_name, default, required, desc in CONFIG_FIELDS:
        key = f'{ENV_PREFIX}_{suffix}'
        if fallback:
            key += f' ({fallback})'
        rows.append((key, type_name, default or '', 'true' if required else '', desc))
    widths = [max(len(row[i]) for row in rows) for i in range(4)]
    lines = []
    for row in rows:
        cells = [row[i].ljust(widths[i]) for i in range(4)] + [row[4]]
        lines.append('  ' + '    '.join(cells).rstrip())
    return '\n'.join(lines)
