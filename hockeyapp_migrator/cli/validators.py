"""Input validation for CLI arguments."""
import re
import sys

from ..credentials.domains.models import url_hostname


def validate_credential_id_base(name: str) -> None:
    """
    Validate a credential id base matches GCP secret id requirements.

    GCP Secret Manager allows only: [a-zA-Z0-9_-]

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Credential id base cannot be empty", file=sys.stderr)
        print("\nCredential ids must match: [a-zA-Z0-9_-]", file=sys.stderr)
        sys.exit(2)

    if not re.match(r'^[a-zA-Z0-9_-]+$', name):
        print(f"Error: Invalid credential id base '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Examples of valid bases:", file=sys.stderr)
        print("  ✓ hockeyapp-api-token", file=sys.stderr)
        print("  ✓ HOCKEYAPP_TOKEN", file=sys.stderr)
        sys.exit(2)


def validate_base_url(base_url: str) -> None:
    """
    Validate a HockeyApp base url has a hostname.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not base_url or not url_hostname(base_url):
        print(f"Error: Invalid base url '{base_url}'", file=sys.stderr)
        print("\nExpected something like: https://rink.hockeyapp.net", file=sys.stderr)
        sys.exit(2)
