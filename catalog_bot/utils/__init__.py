"""
Utils Package
=============
Text, HTML and retry helpers.
"""
