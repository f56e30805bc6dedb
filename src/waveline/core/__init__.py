"""Core domain package for waveline.

Core contains identity resolution, contact naming, permissions, and the
dispatch pipeline without any transport or storage-specific code, keeping
the business logic portable.
"""
