"""
Postduck Importers Module

Bring requests in from curl command lines and Postman collections, and
render requests back out as curl commands.
"""

from .curl import parse_curl, request_to_curl, tokenize, shell_double_quote, shell_single_quote
from .postman import (
    ParsedCollection,
    ParsedCollectionNode,
    ParsedRequest,
    parse_postman_collection,
    ROOT_COLLECTION_ID,
)

__all__ = [
    'parse_curl',
    'request_to_curl',
    'tokenize',
    'shell_double_quote',
    'shell_single_quote',
    'ParsedCollection',
    'ParsedCollectionNode',
    'ParsedRequest',
    'parse_postman_collection',
    'ROOT_COLLECTION_ID',
]
