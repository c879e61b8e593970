import sys

from provider_publisher.cli import main

sys.exit(main())
