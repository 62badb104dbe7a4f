"""Engine dispatcher for detecting and handling Pandas vs Spark DataFrames."""

from typing import Union

import pandas as pd
from pyspark.sql import DataFrame as SparkDataFrame


BackendType = Union[pd.DataFrame, SparkDataFrame]


def get_backend(df: BackendType) -> str:
    """Detect the backend type of a DataFrame.
    
    Args:
        df: A pandas or PySpark DataFrame.
        
    Returns:
        String identifier: "pandas" or "spark".
        
    Raises:
        TypeError: If df is not a recognized DataFrame type.
    """
    if isinstance(df, pd.DataFrame):
        return "pandas"
    elif isinstance(df, SparkDataFrame):
        return "spark"
    else:
        raise TypeError(
            f"Unsupported DataFrame type: {type(df)}. "
            "Expected pandas.DataFrame or pyspark.sql.DataFrame."
        )


def is_spark(df: BackendType) -> bool:
    """Check if the DataFrame is a PySpark DataFrame."""
    return isinstance(df, SparkDataFrame)


def is_pandas(df: BackendType) -> bool:
    """Check if the DataFrame is a pandas DataFrame."""
    return isinstance(df, pd.DataFrame)


def to_pandas(df: BackendType, columns=None) -> pd.DataFrame:
    """Materialize the input as a local pandas DataFrame.

    The estimation core works on dense in-memory arrays, so Spark input is
    projected onto the needed columns and collected to the driver.

    Args:
        df: A pandas or PySpark DataFrame.
        columns: Optional list of columns to keep.

    Returns:
        A pandas DataFrame (a copy for pandas input).
    """
    backend = get_backend(df)
    if columns is not None:
        # Missing columns are left for schema validation to report
        columns = [c for c in columns if c in df.columns]
    if backend == "spark":
        if columns is not None:
            df = df.select(*columns)
        return df.toPandas()
    if columns is not None:
        return df.loc[:, columns].copy()
    return df.copy()
