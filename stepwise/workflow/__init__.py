"""Control flow interpretation and test case running."""
