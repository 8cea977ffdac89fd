"""
Static choropleth maps of county rates.
"""
import logging
from pathlib import Path
from typing import Optional, Union
import geopandas as gpd
import matplotlib.pyplot as plt

logger = logging.getLogger(__name__)


def plot_choropleth(
    geo_rates: gpd.GeoDataFrame,
    column: str,
    title: str,
    output_path: Optional[Union[str, Path]] = None,
    cmap: str = "plasma",
    dpi: int = 300,
    close: bool = False
):
    """
    Draw a county choropleth of one rate column.

    Counties without a rate are drawn in light grey.

    Args:
        geo_rates: Output of join_to_geometry
        column: Rate column to shade by
        title: Map title
        output_path: Where to save the figure (not saved if None)
        cmap: Matplotlib colormap name
        dpi: Resolution of the saved figure
        close: Close the figure after saving (for batch runs)

    Returns:
        The matplotlib Figure
    """
    data = geo_rates.copy()
    data[column] = data[column].astype(float)

    fig, ax = plt.subplots(figsize=(12, 7))
    data.plot(
        column=column,
        cmap=cmap,
        legend=True,
        ax=ax,
        edgecolor="white",
        linewidth=0.1,
        missing_kwds={"color": "lightgrey", "label": "No data"}
    )
    ax.set_title(title)
    ax.axis("off")
    fig.tight_layout()

    if output_path is not None:
        fig.savefig(output_path, dpi=dpi)
        logger.info(f"Saved map to {output_path}")

    if close:
        plt.close(fig)

    return fig
