from chat_gateway.dispatch.dispatcher import Dispatcher

__all__ = ["Dispatcher"]
