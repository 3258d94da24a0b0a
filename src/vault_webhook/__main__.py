import sys

from vault_webhook.server import main

sys.exit(main())
