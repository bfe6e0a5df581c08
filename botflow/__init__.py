"""BotFlow: chatbot flow graphs and a compiler to standalone bot programs."""

__version__ = "0.1.0"
