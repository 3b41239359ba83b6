from .handle_advisor_message import handle_advisor_message
