"""
sympaging: Hold pull lists for library branches.

Fetches each branch's hold pull list from SirsiDynix Symphony web services,
resolves the catalog records behind every hold and writes paging reports
(CSV and XSLT-rendered HTML) for branch staff.
"""

__version__ = "0.1.0"
