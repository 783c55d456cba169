import logging
import os
from typing import Dict

from pyspark.sql import SparkSession

logger = logging.getLogger(__name__)

POSTGRES_JDBC_PACKAGE = "org.postgresql:postgresql:42.7.3"

POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "gear_store")


def get_spark_session(app_name: str) -> SparkSession:
    """Spark session able to read and write the storefront's PostgreSQL tables.

    Runs against SPARK_MASTER_URL when set, local[*] otherwise. Session time
    zone is UTC, matching how order timestamps are stored.
    """
    builder = (
        SparkSession.builder
        .appName(app_name)
        .master(os.getenv("SPARK_MASTER_URL", "local[*]"))
        .config("spark.jars.packages", POSTGRES_JDBC_PACKAGE)
        .config("spark.sql.session.timeZone", "UTC")
        .config("spark.sql.shuffle.partitions", os.getenv("SPARK_SHUFFLE_PARTITIONS", "8"))
    )
    spark = builder.getOrCreate()
    spark.sparkContext.setLogLevel("WARN")

    logger.info(f"Spark session ready for {app_name} on {spark.sparkContext.master}")
    return spark


def get_jdbc_options(table: str) -> Dict[str, str]:
    """JDBC options for reading or writing one PostgreSQL table."""
    return {
        "url": f"jdbc:postgresql://{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
        "dbtable": table,
        "user": POSTGRES_USER,
        "password": POSTGRES_PASSWORD,
        "driver": "org.postgresql.Driver",
    }
