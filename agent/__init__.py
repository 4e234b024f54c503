"""
Test agent: runs the container side of a test inside the isolated environment.
"""
