"""Main entry point for the Mastodon to Bluesky relay."""

import sys

from dotenv import load_dotenv

from toot_relay.config import Settings
from toot_relay.errors import ConfigError, StreamFault
from toot_relay.service import main as service_main


def main():
    """Load configuration and run the relay until it is stopped."""
    load_dotenv()
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        service_main(settings)
    except KeyboardInterrupt:
        print("\nService interrupted by user")
        sys.exit(0)
    except StreamFault as e:
        print(f"Source stream failed: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Service failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
