"""Lesson content access and the topic catalog."""
