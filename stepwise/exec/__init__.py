"""
Step execution: single actions, retries and extraction.
"""
