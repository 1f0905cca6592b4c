"""Shell command tokenization and wrapper unwrapping."""

from agentguard.shell.tokenizer import Tokenizer, tokenize
from agentguard.shell.unwrapper import CommandUnwrapper, unwrap

__all__ = ["CommandUnwrapper", "Tokenizer", "tokenize", "unwrap"]
