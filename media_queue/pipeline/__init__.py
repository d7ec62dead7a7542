"""
This package contains the job queue and the context it runs in.

The queue admits jobs in submission order, bounds how many run at once,
handles cancellation, and finalizes one report per batch.
"""
