"""
Core components for the auditor.

Contains:
- Data models (SystemMap, ValidationIssue, AuditResult, etc.)
- Base class for validators
- File system and route helpers
"""
