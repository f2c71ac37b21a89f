"""Base domain exceptions.

所有领域异常都应继承自 TradewatchError，并可以通过定义 error_code 类属性
来标识错误类别。
"""


class TradewatchError(Exception):
    """Base exception for all tradewatch errors.

    子类可以通过定义 error_code 类属性来自定义错误代码（默认 "TRADEWATCH_ERROR"）。
    """

    error_code: str = "TRADEWATCH_ERROR"

    def __init__(self, message: str = "A tradewatch error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(TradewatchError):
    """Raised when a component is constructed with invalid configuration."""

    error_code = "CONFIGURATION_ERROR"
