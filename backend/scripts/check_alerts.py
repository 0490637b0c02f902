#!/usr/bin/env python3
"""Run one alert evaluation pass and exit.

Exit status is 0 when the pass completed (whatever it triggered) and 1 when
it could not run at all. Suitable for cron or a container one-off job.
"""

import sys

sys.path.insert(0, str(__file__).rsplit("/", 2)[0])

from app.tasks.alerts import main

if __name__ == "__main__":
    sys.exit(main())
