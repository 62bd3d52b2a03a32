"""
Tinderizer core package.

Turns a web article into a Kindle e-book and emails it. The `pipeline`
subpackage holds the job model, the status cache clients poll, the
collaborators for extraction, generation and delivery, and the threaded
pipeline that drives each job through extraction, conversion, email and
cleanup.
"""
