"""Document fill pipeline.

Extracts key/value data from a source document with an external
document oracle and writes it onto a target PDF, either into the
target's own form fields or as positioned text.
"""
