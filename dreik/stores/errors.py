"""Errors raised by the storage layer."""


class StoreError(Exception):
    pass


class UserNotFound(StoreError):
    def __init__(self) -> None:
        super().__init__("stores.user: user not found")


class UserAlreadyExists(StoreError):
    def __init__(self) -> None:
        super().__init__("stores.user: user already exists")


class RequestNotFound(StoreError):
    def __init__(self) -> None:
        super().__init__("stores.request: request not found")


class WorkoutNotFound(StoreError):
    def __init__(self) -> None:
        super().__init__("stores.workout: workout not found")


class RequestAlreadyUsed(StoreError):
    def __init__(self) -> None:
        super().__init__("stores.request: request already used")
