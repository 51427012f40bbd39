"""
Single-source demo: World Bank Indicators

Pulls GDP per capita and population for major economies as one batch,
then the latest population for every country in one call.
"""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.extractors.world_bank import WorldBankClient


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    countries = ["USA", "GBR", "JPN", "DEU", "FRA", "CAN", "AUS", "BRA", "IND", "CHN"]

    print("=" * 60)
    print("World Bank Indicators: G10 Economies")
    print("=" * 60)
    print(f"Countries:  {', '.join(countries)}")
    print("Indicators: GDP per capita, Population")
    print("Years:      2018-2023")
    print()

    with WorldBankClient() as client:
        result = client.extract(
            countries=countries,
            indicators=["NY.GDP.PCAP.CD", "SP.POP.TOTL"],
            start_year=2018,
            end_year=2023,
        )

        # Telemetry
        print("--- Telemetry ---")
        print(f"  Success:    {result.success}")
        print(f"  Partial:    {result.partial}")
        print(f"  Records:    {result.records}")
        print(f"  API calls:  {result.api_calls}")
        print(f"  Cache hits: {result.cache_hits}")
        print(f"  Duration:   {result.duration_seconds:.2f}s")
        for code, message in result.failed.items():
            print(f"  Failed:     {code}: {message}")
        print()

        if not result.success:
            print(f"Error: {result.error}")
            return

        df = result.data

        print("--- GDP per Capita (Latest Available Year) ---")
        gdp = df[df["indicator_code"] == "NY.GDP.PCAP.CD"].dropna(subset=["value", "year"])
        if not gdp.empty:
            latest = gdp.loc[gdp.groupby("country_code")["year"].idxmax()]
            latest = latest.sort_values("value", ascending=False)
            for _, row in latest.iterrows():
                print(f"  {row['country_name']:20s}  ${row['value']:>12,.0f}  ({int(row['year'])})")
        print()

        print("--- Population, Top 10 of All Countries ---")
        everyone = client.fetch_all_countries("SP.POP.TOTL")
        for _, row in everyone.nlargest(10, "value").iterrows():
            print(f"  {row['iso3']}  {row['country']:24s}  {row['value'] / 1_000_000:>8,.1f}M  ({row['year']})")
        print()

        print("--- Data Coverage ---")
        print(f"  Total records:    {len(df)}")
        print(f"  Non-null values:  {df['value'].notna().sum()}")
        print(f"  Null values:      {df['value'].isna().sum()}")
        print(f"  Countries:        {df['country_code'].nunique()}")


if __name__ == "__main__":
    main()
