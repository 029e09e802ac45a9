"""
Aptitest Assessment Engine

Backend of the Aptitest aptitude-testing platform. The core is the assessment
session engine in :mod:`aptitest.assessments.engine`, which turns a published
test into a live, timed attempt and a durable, graded attempt record.

Packages:
1. ``aptitest.common``: configuration, logging and error handling
2. ``aptitest.domain``: question and question bank entities
3. ``aptitest.assessments``: the session engine
4. ``aptitest.database``: SQLAlchemy persistence of attempts
"""

__version__ = "0.1.0"
