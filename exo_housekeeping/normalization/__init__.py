"""Normalization package.

Pure string helpers used by every housekeeping driver:

* ``nickname_normalizer`` – makes a mail nickname acceptable to Exchange
  and unique within one run.
* ``address_normalizer`` – parses ``EmailAddresses`` proxy strings, picks
  the primary SMTP address and checks address syntax.

Nothing in this package performs I/O or raises for string input.
"""
