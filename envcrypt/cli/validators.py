"""Input validation for CLI arguments."""
import re
import sys

VARIABLE_NAME_PATTERN = r'^[A-Za-z_][A-Za-z0-9_]*$'


def validate_variable_name(name: str) -> None:
    """
    Validate a secret variable name is usable as an environment variable.

    Missing names are left to the encryptor workflow, which reports them as a
    validation error.

    Args:
        name: Variable name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        return

    if not re.match(VARIABLE_NAME_PATTERN, name):
        print(f"Error: Invalid variable name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_); must not start with a number",
              file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ DB_PASS", file=sys.stderr)
        print("  ✓ stripe_api_key", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ api-key (contains hyphen)", file=sys.stderr)
        print("  ✗ 1PASSWORD (starts with a number)", file=sys.stderr)
        sys.exit(2)
