"""Resumable worker that processes the remaining chunks of one input.

A worker invocation keeps no local state between runs. Completion of a
chunk is recorded only by its marker blob, so every invocation rebuilds the
remaining work from storage: split the input, list the markers, subtract,
and process what is left concurrently. Duplicate or retried invocations of
the same input are safe because marker writes are idempotent overwrites.
"""
