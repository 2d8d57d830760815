"""
Shared utilities: exceptions, constants, caching and table I/O.

Enables pandas Copy-on-Write globally so frames handed between stages never
alias each other's buffers.
"""

import pandas as pd

pd.options.mode.copy_on_write = True
