import enum


class MovementType(str, enum.Enum):
    stock_in = "STOCK_IN"
    stock_out = "STOCK_OUT"
    adjustment = "ADJUSTMENT"
