"""Execution coordinator: stages inputs, submits one task per input, waits."""
