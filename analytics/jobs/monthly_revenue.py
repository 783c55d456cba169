"""
Monthly Revenue Batch Job

Purpose:
    Rolls paid orders up into calendar months for the back-office revenue
    charts, so the dashboard does not rescan every order on each visit.

Data Flow:
    PostgreSQL (orders) → Spark batch → PostgreSQL (monthly_revenue)

Output Metrics (per month):
    - month: First day of the calendar month (UTC)
    - total_revenue: Sum of paid order totals
    - order_count: Number of paid orders
    - avg_order_value: Average paid order total

Usage:
    spark-submit --packages org.postgresql:postgresql:42.7.3 -m analytics.jobs.monthly_revenue
"""

import logging

from pyspark.sql import DataFrame
from pyspark.sql.functions import avg, col, count, date_trunc, round as spark_round, sum as spark_sum, to_date

from analytics.spark_session import get_jdbc_options, get_spark_session

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

OUTPUT_TABLE = "monthly_revenue"


def aggregate_monthly_revenue(orders: DataFrame) -> DataFrame:
    """Paid orders grouped by calendar month, oldest month first."""
    return (
        orders
        .filter(col("payment_status") == "paid")
        .withColumn("month", to_date(date_trunc("month", col("created_at"))))
        .groupBy("month")
        .agg(
            spark_round(spark_sum("total_amount"), 2).alias("total_revenue"),
            count("*").alias("order_count"),
            spark_round(avg("total_amount"), 2).alias("avg_order_value"),
        )
        .orderBy("month")
    )


def monthly_revenue():
    """Read orders, aggregate by month and replace the monthly_revenue table."""
    logger.info("Starting monthly revenue job...")
    spark = get_spark_session("monthly-revenue")

    orders = (
        spark.read
        .format("jdbc")
        .options(**get_jdbc_options("orders"))
        .load()
        .select("id", "payment_status", "total_amount", "created_at")
    )

    result = aggregate_monthly_revenue(orders)

    try:
        result.write \
            .format("jdbc") \
            .mode("overwrite") \
            .options(**get_jdbc_options(OUTPUT_TABLE)) \
            .save()
        logger.info(f"Data written to {OUTPUT_TABLE}")
    except Exception as e:
        logger.error(f"Error writing to {OUTPUT_TABLE}: {e}")
        raise
    finally:
        spark.stop()


if __name__ == "__main__":
    monthly_revenue()
