from ._api_tools import Freezable, setup_object, class_or_instance_method
