from pdedomain.errors import FrozenConfigurationError


class Freezable:
    """
    This is a mixin class for setup objects that can be frozen.
    The state of an object is incremented whenever it is modified,
    and once `freeze()` has been called any further modification
    raises a `FrozenConfigurationError`.
    """

    def __init__(self):
        self._state = 0
        self._frozen = False
        super().__init__()

    def _increment(self):
        self._check_mutable()
        self._state += 1

    def _get_state(self):
        return self._state

    def _check_mutable(self):
        if self._frozen:
            raise FrozenConfigurationError(
                f"{self.__class__.__name__} '{getattr(self, 'name', '?')}' "
                "is finalized and can no longer be modified",
                entity=getattr(self, "name", None),
            )

    def freeze(self):
        self._frozen = True

    @property
    def is_frozen(self):
        return self._frozen


## See this for source: https://stackoverflow.com/questions/28237955/same-name-for-classmethod-and-instancemethod
class class_or_instance_method(object):
    def __init__(self, f):
        self.f = f

    def __get__(self, instance, owner):
        if instance is not None:
            class_or_instance = instance
        else:
            class_or_instance = owner

        def newfunc(*args, **kwargs):
            return self.f(class_or_instance, *args, **kwargs)

        return newfunc


class setup_object(Freezable):
    """
    The setup (mixin) class adds common functionality that we wish to provide on all setup objects
    such as the view methods (classmethod for generic information and instance method that can be over-ridden)
    to provide instance-specific information
    """

    _obj_count = 0  # a class variable to count the number of objects

    def __init__(self):
        super().__init__()

        self._setup_id = setup_object._obj_count
        setup_object._obj_count += 1

    @classmethod
    def setup_object_counter(cls):
        """Number of setup_object instances created"""
        return setup_object._obj_count

    @property
    def instance_number(self):
        """Unique number of the setup_object instance"""
        return self._setup_id

    def __str__(self):
        s = super().__str__()
        return f"{self.__class__.__name__} instance {self.instance_number}, {s}"

    @staticmethod
    def _reset():
        """Reset the object counter"""
        setup_object._obj_count = 0

    def describe(self):
        """Markdown summary of this object (as shown by `view`)"""
        return "\n".join(self._object_viewer())

    @class_or_instance_method
    def view(self_or_cls, class_documentation=False):
        from IPython.display import Markdown, display
        from textwrap import dedent
        import inspect

        if inspect.isclass(self_or_cls) or class_documentation == True:

            docstring = dedent(self_or_cls.__doc__ or "")
            display(Markdown(docstring))

            if class_documentation:
                display(Markdown("---"))

        if not inspect.isclass(self_or_cls):
            display(Markdown(f"**Class**: {self_or_cls.__class__}"))
            display(Markdown(self_or_cls.describe()))

    # placeholder
    def _object_viewer(self):
        return ["# Details"]
