import streamlit as st
import pandas as pd
import numpy as np
import plotly.express as px
import plotly.graph_objects as go
import requests
from resilience import config
from resilience.utils import FinancialAssumptions, SeaWallProject, DrainageProject, MonteCarloSummary
from resilience.finance import (cash_flow_projection, benefit_cost_ratio, default_probability, default_risk_band,
                                value_at_risk_95, structure_green_bond_from_analysis, rating_tier,
                                monte_carlo_npv, summarize_npvs, conditional_value_at_risk, loss_distribution)
from resilience.risk import (generate_rainfall_data, generate_soil_moisture_data, generate_agriculture_risk_factors,
                             generate_storm_surge_data, generate_coastal_risk_factors, generate_flood_capacity_data,
                             generate_flood_risk_factors, generate_yield_comparison_data,
                             calculate_resilience_score, max_potential_loss_for)
from resilience.recommendations import generate_recommendations
from resilience.proxies import handle_request, parse_finance_response, INTERVENTION_TYPES
from resilience.geocoding import MapboxGeocoder
from resilience.upstream import fetch_cba_series, analyze_portfolio

config.configure_logging()
st.set_page_config(page_title='Climate Resilience Finance Dashboard', layout='wide')

TIER_COLOURS = {'prime': 'green', 'watch': 'orange', 'distressed': 'red'}
PRIORITY_ICONS = {'high': '🔴', 'medium': '🟠', 'low': '🟢'}


@st.cache_data
def df_to_csv_bytes(df):
    return df.to_csv(index=False).encode('utf-8')


@st.cache_data(ttl=3600)
def search_places(query):
    try:
        return MapboxGeocoder().forward(query)
    except requests.RequestException as e:
        st.error(f'Geocoding error: {e}')
        return []


@st.cache_data(ttl=3600)
def place_name(lat, lon):
    return MapboxGeocoder().reverse(lat, lon)


def run_simulation(endpoint, payload, state_key):
    """Call a proxy; only a successful response replaces the results already on screen."""
    with st.spinner('Running simulation...'):
        resp = handle_request(endpoint, 'POST', payload)
    if resp.ok:
        st.session_state[state_key] = resp.body
        return True
    body = resp.body or {}
    st.error(f"{body.get('error', 'Simulation failed')}: {body.get('message', resp.status)}")
    return False


def result_value(results, *keys, default=0.0):
    data = results.get('data') if isinstance(results.get('data'), dict) else results
    for k in keys:
        if data.get(k) is not None:
            return data[k]
    return default


def show_risk_breakdown(factors, score):
    col1, col2 = st.columns([2, 1])
    df = pd.DataFrame([f.__dict__ for f in factors])
    fig = px.bar(df, x='percentage', y='name', orientation='h', color='name',
                 color_discrete_map={f.name: f.color for f in factors}, title='Risk Breakdown')
    fig.update_layout(showlegend=False)
    col1.plotly_chart(fig, use_container_width=True)
    col2.metric('Resilience Score', f'{score}/100')


def show_recommendations(recs):
    st.subheader('Recommended Adaptations')
    for r in recs:
        with st.expander(f'{PRIORITY_ICONS[r.priority]} {r.title} ({r.impact})'):
            st.write(r.description)


def show_investment_card(analysis, project, lifespan, rate):
    if analysis is None:
        st.info('Define a project to see its benefit-cost ratio.')
        return
    col1, col2, col3 = st.columns(3)
    col1.metric('Benefit-Cost Ratio', f'{analysis.bcr:.2f}x')
    col2.metric(f'Avoided Damage ({lifespan}yr NPV)', f'${analysis.npv_avoided_damage:,.0f}')
    col3.metric('Project CAPEX', f'${project.capex:,.0f}', f'OPEX ${project.opex:,.0f}/yr', delta_color='off')
    if analysis.bankable:
        st.success(f'Bankable: every $1 invested returns ${analysis.bcr:.2f} in avoided damage')
    else:
        st.error('Unviable: project costs exceed expected benefits at current parameters')
    st.caption(f'BCR compares the NPV of avoided damage against total project cost over {lifespan} years '
               f'at {rate}% discount rate.')


# --- Sidebar: location & navigation ---
st.sidebar.title('Location')
query = st.sidebar.text_input('Search a place')
if query:
    places = search_places(query)
    if places:
        choice = st.sidebar.selectbox('Matches', places, format_func=lambda p: p.place_name)
        st.session_state.lat, st.session_state.lon = choice.lat, choice.lng
lat = st.sidebar.number_input('Latitude', -90.0, 90.0, float(st.session_state.get('lat', 13.75)), format='%.4f')
lon = st.sidebar.number_input('Longitude', -180.0, 180.0, float(st.session_state.get('lon', 100.5)), format='%.4f')
if config.MAPBOX_API_KEY:
    name = place_name(lat, lon)
    if name:
        st.sidebar.caption(name)

st.sidebar.title('Navigation')
page = st.sidebar.radio('Go to', ['Agriculture', 'Coastal', 'Flood', 'Risk & Finance', 'Portfolio'])
temperature = st.sidebar.slider('Temperature Increase (°C)', 0.0, 4.0, 1.5, step=0.1)

# --- Page 1: Agriculture ---
if page == 'Agriculture':
    st.header('Agriculture')
    col1, col2, col3 = st.columns(3)
    crop = col1.text_input('Crop', 'maize')
    rain_change = col2.slider('Rainfall Change (%)', -50, 50, 0)
    run = col3.button('Run Simulation')
    if run:
        run_simulation('simulate-agriculture',
                       {'lat': lat, 'lon': lon, 'crop': crop, 'temp_increase': temperature, 'rain_change': rain_change},
                       'agriculture_results')

    rainfall = pd.DataFrame(generate_rainfall_data(lat, temperature))
    soil = generate_soil_moisture_data(lat, temperature)
    c1, c2 = st.columns(2)
    c1.plotly_chart(px.bar(rainfall, x='month', y=['historical', 'projected'], barmode='group',
                           title='Rainfall (mm)'), use_container_width=True)
    fig = px.line(pd.DataFrame(soil), x='month', y='moisture', title='Soil Moisture (%)')
    fig.add_hline(y=soil[0]['stress_threshold'], line_dash='dash', line_color='red')
    c2.plotly_chart(fig, use_container_width=True)

    factors = generate_agriculture_risk_factors(temperature, soil)
    results = st.session_state.get('agriculture_results')
    if results:
        avoided = float(result_value(results, 'avoided_loss', 'avoidedLoss'))
        score = calculate_resilience_score('agriculture', factors, avoided, max_potential_loss_for('agriculture'))
        yields = generate_yield_comparison_data(float(result_value(results, 'yield_baseline', default=1.0)),
                                                float(result_value(results, 'yield_resilient', default=1.0)),
                                                temperature)
        st.plotly_chart(px.bar(pd.DataFrame(yields), x='scenario', y='yield', color='scenario',
                               color_discrete_map={y['scenario']: y['color'] for y in yields},
                               title='Yield (t/ha)'), use_container_width=True)
    else:
        score = 0
    show_risk_breakdown(factors, score)

    st.subheader('Cumulative Cash Flow')
    col1, col2, col3, col4, col5 = st.columns(5)
    capex = col1.number_input('CapEx (USD)', min_value=0.0, value=2_000.0, step=100.0)
    opex = col2.number_input('OpEx (USD/yr)', min_value=0.0, value=100.0, step=10.0)
    yield_benefit = col3.number_input('Yield Benefit (%)', min_value=0.0, value=30.0)
    crop_price = col4.number_input('Crop Price (USD/t)', min_value=0.0, value=3_000.0, step=50.0)
    rate = col5.number_input('Discount Rate (%)', min_value=0.0, max_value=50.0, value=15.0)
    cf = cash_flow_projection(capex, opex, yield_benefit, crop_price, rate)
    m1, m2, m3 = st.columns(3)
    m1.metric('NPV', f'${cf.npv:,}')
    m2.metric('ROI', f'{cf.roi_pct}%')
    m3.metric('Payback', f'{cf.payback_years}yr' if cf.payback_years is not None else 'N/A')
    df_cf = pd.DataFrame([p.__dict__ for p in cf.points])
    fig = px.area(df_cf, x='year', y='cumulative', title='Cumulative Cash Flow (USD)')
    fig.add_hline(y=0, line_dash='dash')
    if cf.payback_years is not None:
        fig.add_vline(x=int(np.ceil(cf.payback_years)), line_dash='dash', line_color='#eb796f',
                      annotation_text='Payback')
    st.plotly_chart(fig, use_container_width=True)
    with st.expander('Download Results'):
        st.download_button('Cash Flow CSV', df_to_csv_bytes(df_cf), 'cash_flow.csv', 'text/csv')

    show_recommendations(generate_recommendations('agriculture', {
        'temperature_increase': temperature, 'risk_factors': factors, 'soil_moisture': soil, 'crop_type': crop,
    }))

# --- Page 2: Coastal ---
elif page == 'Coastal':
    st.header('Coastal')
    col1, col2, col3 = st.columns(3)
    mangrove_width = col1.slider('Mangrove Width (m)', 0, 500, 100, step=10)
    slr = col2.slider('Sea Level Rise (m)', 0.0, 2.0, 0.5, step=0.1)
    storm_surge = col3.checkbox('Include Storm Surge', value=True)
    if st.button('Run Simulation'):
        run_simulation('simulate-coastal',
                       {'lat': lat, 'lon': lon, 'mangrove_width': mangrove_width, 'slr_projection': slr,
                        'include_storm_surge': storm_surge},
                       'coastal_results')

    surge = pd.DataFrame(generate_storm_surge_data(mangrove_width))
    st.plotly_chart(px.line(surge, x='year', y=['baseline', 'with_mangroves'], title='Storm Surge Height (m)'),
                    use_container_width=True)

    results = st.session_state.get('coastal_results') or {}
    slope = result_value(results, 'slope', default=None)
    storm_wave = result_value(results, 'storm_wave', default=None)
    avoided = float(result_value(results, 'avoided_loss', 'avoidedLoss'))
    factors = generate_coastal_risk_factors(slope, storm_wave, mangrove_width)
    score = calculate_resilience_score('coastal', factors, avoided, max_potential_loss_for('coastal')) if results else 0
    show_risk_breakdown(factors, score)

    st.subheader('Sea Wall Investment')
    col1, col2, col3, col4, col5 = st.columns(5)
    capex = col1.number_input('CapEx (USD)', min_value=0.0, value=500_000.0, step=10_000.0)
    opex = col2.number_input('OpEx (USD/yr)', min_value=0.0, value=10_000.0, step=1_000.0)
    height = col3.slider('Wall Height Increase (m)', 0.5, 5.0, 1.0, step=0.5)
    lifespan = col4.number_input('Asset Lifespan (yr)', 1, 100, 30)
    rate = col5.number_input('Discount Rate (%)', min_value=0.0, max_value=50.0, value=8.0)
    col6, col7 = st.columns(2)
    bi = col6.checkbox('Include Business Interruption')
    daily_revenue = col7.number_input('Daily Revenue (USD)', min_value=0.0, value=5_000.0) if bi else 0.0
    project = SeaWallProject(capex=capex, opex=opex, height_increase=height) if results else None
    show_investment_card(benefit_cost_ratio(avoided, project, lifespan, rate, daily_revenue, bi),
                         project, lifespan, rate)

    show_recommendations(generate_recommendations('coastal', {
        'mangrove_width': mangrove_width, 'slope': slope, 'storm_wave': storm_wave,
        'risk_factors': factors, 'avoided_loss': avoided,
    }))

# --- Page 3: Flood ---
elif page == 'Flood':
    st.header('Urban Flood')
    col1, col2, col3 = st.columns(3)
    rain_intensity = col1.slider('Rain Intensity (mm/hr)', 0, 500, 100)
    imperviousness = col2.slider('Current Imperviousness', 0.0, 1.0, 0.7)
    intervention = col3.selectbox('Intervention', INTERVENTION_TYPES)
    col4, col5 = st.columns(2)
    green_roofs = col4.checkbox('Green Roofs')
    permeable = col5.checkbox('Permeable Pavement')
    if st.button('Run Simulation'):
        run_simulation('simulate-flood',
                       {'lat': lat, 'lon': lon, 'rain_intensity': rain_intensity,
                        'current_imperviousness': imperviousness, 'intervention_type': intervention},
                       'flood_results')

    capacity = pd.DataFrame(generate_flood_capacity_data(green_roofs, permeable))
    st.plotly_chart(px.bar(capacity, x='category', y=['capacity', 'demand'], barmode='group',
                           title='Capacity vs Demand'), use_container_width=True)

    results = st.session_state.get('flood_results') or {}
    protected = float(result_value(results, 'value_protected', 'valueProtected'))
    depth_reduction = float(result_value(results, 'flood_depth_reduction', 'floodDepthReduction'))
    factors = generate_flood_risk_factors(green_roofs, permeable)
    score = calculate_resilience_score('flood', factors, protected, max_potential_loss_for('flood')) if results else 0
    show_risk_breakdown(factors, score)

    st.subheader('Drainage Investment')
    col1, col2, col3, col4, col5 = st.columns(5)
    capex = col1.number_input('CapEx (USD)', min_value=0.0, value=500_000.0, step=10_000.0)
    opex = col2.number_input('OpEx (USD/yr)', min_value=0.0, value=10_000.0, step=1_000.0)
    upgrade = col3.slider('Capacity Upgrade (cm)', 10, 100, 30, step=5)
    lifespan = col4.number_input('Asset Lifespan (yr)', 1, 100, 30)
    rate = col5.number_input('Discount Rate (%)', min_value=0.0, max_value=50.0, value=8.0)
    project = DrainageProject(capex=capex, opex=opex, capacity_upgrade=upgrade) if results else None
    show_investment_card(benefit_cost_ratio(protected, project, lifespan, rate), project, lifespan, rate)

    show_recommendations(generate_recommendations('flood', {
        'green_roofs': green_roofs, 'permeable_pavement': permeable, 'risk_factors': factors,
        'flood_depth_reduction': depth_reduction,
    }))

# --- Page 4: Risk & Finance ---
elif page == 'Risk & Finance':
    st.header('Scenario Sandbox')
    defaults = FinancialAssumptions()
    col1, col2, col3, col4 = st.columns(4)
    assumptions = FinancialAssumptions(
        capex=col1.number_input('CAPEX Budget ($)', 0.0, 100_000_000.0, defaults.capex, step=10_000.0),
        opex=col2.number_input('OPEX / Year ($)', 0.0, 10_000_000.0, defaults.opex, step=1_000.0),
        discount_rate_pct=col3.number_input('Discount Rate (%)', 0.0, 50.0, defaults.discount_rate_pct, step=0.5),
        asset_lifespan_years=int(col4.number_input('Asset Lifespan (yr)', 1, 100, defaults.asset_lifespan_years)),
    )
    crop = st.text_input('Crop', 'maize')
    if st.button('Re-calculate'):
        ok = run_simulation('simulate-finance', {'lat': lat, 'lon': lon, 'crop': crop, **assumptions.as_payload()},
                            'finance_raw')
        if ok:
            st.session_state.finance = parse_finance_response(st.session_state.finance_raw)
            st.session_state.cba_series = fetch_cba_series(assumptions, lat, lon)

    finance = st.session_state.get('finance')
    if finance:
        fd = finance['financial_data'] or {}
        if finance['executive_summary']:
            st.info(finance['executive_summary'])
        c1, c2, c3 = st.columns(3)
        c1.metric('NPV (USD)', f"{fd.get('npv_usd', 0):,.0f}" if fd.get('npv_usd') is not None else 'n/a')
        c2.metric('ROI', f"{fd.get('roi_pct', 0):.0f}%" if fd.get('roi_pct') is not None else 'n/a')
        c3.metric('Payback (yrs)', f"{fd['payback_years']:.1f}" if fd.get('payback_years') is not None else 'n/a')

        st.subheader('Green Bond Structure')
        bond = structure_green_bond_from_analysis(fd)
        b1, b2, b3, b4 = st.columns(4)
        b1.metric('Principal', f'${bond.principal:,.0f}')
        b2.metric('Coupon', f'{bond.coupon:.1f}%')
        b3.metric('Tenor', f'{bond.tenor} yrs')
        b4.metric('Greenium Savings', f'${bond.greenium_savings:,}')
        st.markdown(f':{TIER_COLOURS[rating_tier(bond.rating)]}[Rating: **{bond.rating}**]')

    st.subheader('Risk Stress Test')
    mc_upstream = (finance or {}).get('monte_carlo_data')
    col1, col2, col3, col4 = st.columns(4)
    yield_benefit = col1.number_input('Yield Benefit (%)', min_value=0.0, value=30.0)
    crop_price = col2.number_input('Crop Price (USD/t)', min_value=0.0, value=300.0)
    runs = col3.slider('Monte Carlo runs', 100, 10_000, 1000, step=100)
    price_sigma = col4.slider('Price Volatility σ', 0.0, 0.5, 0.15)
    with st.spinner('Running Monte Carlo...'):
        npvs = monte_carlo_npv(assumptions.capex, assumptions.opex, yield_benefit, crop_price,
                               assumptions.discount_rate_pct, n=runs, price_sigma=price_sigma)
    summary = MonteCarloSummary.from_metrics(mc_upstream) if mc_upstream else summarize_npvs(npvs)
    var95 = value_at_risk_95(summary)
    prob = default_probability(summary.mean, summary.std)
    s1, s2, s3 = st.columns(3)
    s1.metric('Value at Risk (95%)', f'${var95:,.0f}', 'Potential Loss' if var95 < 0 else 'Positive Outlook',
              delta_color='inverse' if var95 < 0 else 'normal')
    s2.metric('Default Probability', f'{prob:.1f}%', default_risk_band(prob), delta_color='off')
    s3.metric('Mean NPV', f'${summary.mean:,.0f}')
    st.progress(min(prob, 100.0) / 100)
    if mc_upstream:
        st.caption('VaR and default probability: finance service simulation. '
                   f'Loss distribution below: local {runs:,}-run simulation.')

    cvar95 = conditional_value_at_risk(npvs, 0.95)
    cvar99 = conditional_value_at_risk(npvs, 0.99)
    dist = pd.DataFrame(loss_distribution(npvs))
    fig = go.Figure(go.Bar(x=dist['loss_amount'], y=dist['frequency'], marker_color='#ea580c'))
    fig.add_vline(x=cvar95, line_color='#ef4444', annotation_text='95% CVaR')
    fig.add_vline(x=cvar99, line_color='#991b1b', line_dash='dash', annotation_text='99% CVaR')
    fig.update_layout(title=f'Local Loss Distribution ({runs:,} sims)', xaxis_title='Loss (USD)', yaxis_title='Count')
    st.plotly_chart(fig, use_container_width=True)

    series = st.session_state.get('cba_series')
    if series:
        st.plotly_chart(px.line(pd.DataFrame(series), x='year', y=['baseline_cost', 'intervention_cost'],
                                title='Cost-Benefit Time Series'), use_container_width=True)
    else:
        st.caption('No CBA data loaded.')

# --- Page 5: Portfolio ---
else:
    st.header('Portfolio')
    st.write('Upload a CSV of assets with columns lat, lon and optionally name, value.')
    f = st.file_uploader('Assets CSV', type=['csv'])
    if f and st.button('Analyze Portfolio'):
        assets = pd.read_csv(f).to_dict(orient='records')
        try:
            st.session_state.portfolio = analyze_portfolio(assets)
        except requests.RequestException as e:
            st.error(f'Portfolio analysis failed: {e}')

    portfolio = st.session_state.get('portfolio')
    if portfolio:
        summary = portfolio['portfolio_summary']
        c1, c2, c3 = st.columns(3)
        c1.metric('Total Value', f"${summary['totalPortfolioValue']:,.0f}")
        c2.metric('Value at Risk', f"${summary['totalValueAtRisk']:,.0f}")
        c3.metric('Avg Resilience', f"{summary['averageResilienceScore']:.0f}/100")
        df = pd.DataFrame(portfolio.get('asset_results') or [])
        if not df.empty:
            st.dataframe(df, use_container_width=True)
            st.map(df.rename(columns={'lon': 'longitude', 'lat': 'latitude'}))
            st.download_button('Asset Results CSV', df_to_csv_bytes(df), 'portfolio.csv', 'text/csv')
