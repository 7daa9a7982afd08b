"""
Parsers for .env style key-value files, with a textual quoting check for secrets.
"""
import io
import re
from typing import Dict, Iterable
from dotenv import dotenv_values
from ..MODELS.errors import UnsafeQuoting

# KEY=VALUE, optionally prefixed with "export"
ASSIGNMENT = re.compile(r'^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=(.*)$')
# A whole value in single quotes, optionally followed by a comment
SINGLE_QUOTED = re.compile(r"^'[^']*'(\s+#.*)?$")

class EnvParser:
    """
    Parser for .env files.
    """
    @staticmethod
    def normalize(content: str) -> str:
        """
        Strips Windows line endings and a leading byte order mark.
        """
        return content.lstrip('\ufeff').replace('\r\n', '\n').replace('\r', '\n')

    @staticmethod
    def check_quoting(content: str, secret_keys: Iterable[str]) -> None:
        """
        Fails on the first secret assignment whose raw value is not wrapped
        in single quotes.

        This works on the raw text, before any parsing, because an unquoted
        value with shell metacharacters already breaks parsing.

        :raises UnsafeQuoting: naming the offending key.
        """
        secrets = set(secret_keys)
        for line in EnvParser.normalize(content).split('\n'):
            if line.lstrip().startswith('#'):
                continue
            match = ASSIGNMENT.match(line)
            if not match or match.group(1) not in secrets:
                continue
            if not SINGLE_QUOTED.match(match.group(2).strip()):
                raise UnsafeQuoting(match.group(1))

    @staticmethod
    def parse_from_string(content: str) -> Dict[str, str]:
        """
        Parses environment variables from a string.
        Quotes, comments and escapes follow python-dotenv; values are taken
        literally, without ``${VAR}`` expansion.
        """
        values = dotenv_values(stream=io.StringIO(EnvParser.normalize(content)), interpolate=False)
        return {key: (value if value is not None else '') for key, value in values.items()}
