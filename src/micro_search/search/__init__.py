"""
Search indexing and query engine package.

This package provides a pure-Python search stack:
- analyzers: Tokenizer pipeline (split, skip, lowercase, fold, n-grams, stopwords, scoring)
- schema: Field types and schema definitions
- inverted_index: Postings, document store and snapshot payloads
- query: Query token AST and parser
- evaluator: Boolean, field and range query evaluation
- results: Sorting, paging and materialization
"""
