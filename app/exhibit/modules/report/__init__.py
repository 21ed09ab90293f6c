"""
Report module.

Staging (rename + flag), un-staging, and the spreadsheet export of the
report set. Records are never deleted; removing from the report only clears
the flag.
"""
